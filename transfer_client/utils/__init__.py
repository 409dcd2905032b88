"""Utility helpers for HTTP, TLS and filesystem operations."""

from .blocking_client import BlockingTransferClient
from .file_utils import cleanup_directory, ensure_directory
from .http_client import TransferClient, merge_headers
from .tls import TrustContext, build_trust_context

__all__ = [
    "BlockingTransferClient",
    "TransferClient",
    "TrustContext",
    "build_trust_context",
    "cleanup_directory",
    "ensure_directory",
    "merge_headers",
]
