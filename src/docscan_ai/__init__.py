"""
docscan-ai: OCR and translation of scanned documents.

This package provides tools for:
- Text recognition from document images with vision models
- Translation of the recognized text, served from a content-addressable cache
- A pool of interchangeable API keys with health tracking and failover
- A resumable, cancellable per-document processing state machine
"""

__version__ = "0.1.0"
__author__ = "yharby"

from docscan_ai.cache import CacheEntry, TranslationCache, fingerprint
from docscan_ai.config import Settings, load_config
from docscan_ai.credentials import CredentialEntry, CredentialPool
from docscan_ai.database import Database, Document
from docscan_ai.exceptions import (
    ApiError,
    ApiErrorKind,
    CacheUnavailableError,
    CredentialsExhaustedError,
    DocScanError,
    DocumentNotFoundError,
    InvalidTransitionError,
    PersistenceError,
)
from docscan_ai.processing import (
    ProcessingOrchestrator,
    ProcessingRequest,
    ProcessingStatus,
    StageExecutor,
    Transition,
)
from docscan_ai.scanner import DocumentScanner

__all__ = [
    # Config
    "Settings",
    "load_config",
    # Database
    "Database",
    "Document",
    # Scanner
    "DocumentScanner",
    # Credentials
    "CredentialEntry",
    "CredentialPool",
    # Cache
    "CacheEntry",
    "TranslationCache",
    "fingerprint",
    # Processing
    "ProcessingOrchestrator",
    "ProcessingRequest",
    "ProcessingStatus",
    "StageExecutor",
    "Transition",
    # Errors
    "ApiError",
    "ApiErrorKind",
    "CacheUnavailableError",
    "CredentialsExhaustedError",
    "DocScanError",
    "DocumentNotFoundError",
    "InvalidTransitionError",
    "PersistenceError",
]
