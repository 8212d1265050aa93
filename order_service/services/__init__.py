"""Domain services and external collaborator clients."""
