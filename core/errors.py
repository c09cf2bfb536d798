# core/errors.py
"""Error taxonomy for the ingestion and retrieval pipeline"""
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes attached to pipeline exceptions."""
    NO_TEXT_FOUND = "NO_TEXT_FOUND"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    NO_DOCUMENTS = "NO_DOCUMENTS"
    VECTOR_STORE_FAILED = "VECTOR_STORE_FAILED"
    SNAPSHOT_INVALID = "SNAPSHOT_INVALID"
    NO_BACKEND = "NO_BACKEND"
    BACKEND_NOT_LOADED = "BACKEND_NOT_LOADED"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"


class RAGError(Exception):
    """Base class for pipeline errors carrying an error code"""

    default_code = ErrorCode.PROCESSING_FAILED

    def __init__(self, message: str, error_code: ErrorCode = None):
        self.message = message
        self.error_code = error_code or self.default_code
        super().__init__(message)

    def __str__(self):
        # Format used for logging
        return f"[{self.error_code.value}] {self.message}"


# ============= Soft / per-item failures =============

class DocumentProcessingError(RAGError):
    """A single document could not be turned into chunks"""
    default_code = ErrorCode.PROCESSING_FAILED


class VectorStoreError(RAGError):
    """A vector store call (insert, search, probe) failed"""
    default_code = ErrorCode.VECTOR_STORE_FAILED


# ============= Hard failures =============

class SnapshotError(RAGError):
    """The persisted local snapshot exists but cannot be read back"""
    default_code = ErrorCode.SNAPSHOT_INVALID


class IngestionError(RAGError):
    """Ingestion produced nothing to store"""
    default_code = ErrorCode.NO_DOCUMENTS


class BackendUnavailableError(RAGError):
    """Neither the networked store nor a local snapshot is available"""
    default_code = ErrorCode.NO_BACKEND


class BackendNotLoadedError(RAGError):
    """Retrieval was attempted before a backend was loaded"""
    default_code = ErrorCode.BACKEND_NOT_LOADED


class ConfigurationError(RAGError):
    """Settings are missing or inconsistent"""
    default_code = ErrorCode.INVALID_CONFIGURATION
