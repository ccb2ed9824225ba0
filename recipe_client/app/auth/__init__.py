"""
Authentication helpers for the recipe client.
"""

from .credentials import CredentialProvider

__all__ = [
    "CredentialProvider",
]
