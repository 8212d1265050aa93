"""
Messaging package.

Redis-backed request-reply transport used for the catalog and payment
gateway collaborators, and the consumer for inbound payment events.
"""
