"""Clients for remote services."""

from .identity_client import IdentityServiceClient, RestIdentityClient

__all__ = [
    "IdentityServiceClient",
    "RestIdentityClient",
]
