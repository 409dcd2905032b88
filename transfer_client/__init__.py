"""HTTP transfer client with pluggable TLS trust, multipart uploads and safe archive extraction."""

from .api import JsonAPI
from .errors import (
    ConfigError,
    DecodeError,
    FilesystemError,
    InvalidCertificateError,
    InvalidEndpointError,
    PathSafetyError,
    StatusError,
    TLSVerificationError,
    TransferError,
    TransportError,
    UploadError,
)
from .models import (
    ArchiveFormat,
    ClientConfig,
    CustomRootCertificate,
    ExtractionResult,
    InsecureSkipVerify,
    SystemDefault,
    TransferResponse,
)
from .transfers import ArchiveExtractor, Downloader, Uploader, extract_archive
from .utils import BlockingTransferClient, TransferClient, build_trust_context

__all__ = [
    "ArchiveExtractor",
    "ArchiveFormat",
    "BlockingTransferClient",
    "ClientConfig",
    "ConfigError",
    "CustomRootCertificate",
    "DecodeError",
    "Downloader",
    "ExtractionResult",
    "FilesystemError",
    "InsecureSkipVerify",
    "InvalidCertificateError",
    "InvalidEndpointError",
    "JsonAPI",
    "PathSafetyError",
    "StatusError",
    "SystemDefault",
    "TLSVerificationError",
    "TransferClient",
    "TransferError",
    "TransferResponse",
    "TransportError",
    "UploadError",
    "Uploader",
    "build_trust_context",
    "extract_archive",
]
