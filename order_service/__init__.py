"""
Order service package.

Owns the purchase order lifecycle: catalog-validated creation, status
changes, payment session initiation and payment completion recording.
"""

__version__ = "1.0.0"
