"""
API credential pool with health tracking and failover.
"""

from docscan_ai.credentials.base import CredentialEntry, CredentialStore
from docscan_ai.credentials.pool import CredentialPool

__all__ = [
    "CredentialEntry",
    "CredentialPool",
    "CredentialStore",
]
