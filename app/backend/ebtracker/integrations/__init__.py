"""Adapters for external collaborators: identity, email and object storage."""
