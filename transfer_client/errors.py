"""Exception hierarchy shared by the client, transfers and archive code."""

from __future__ import annotations

from typing import Optional


class TransferError(Exception):
    """Base class for every error raised by transfer_client."""


class ConfigError(TransferError):
    """Raised when client configuration cannot be turned into a working client."""


class InvalidCertificateError(ConfigError):
    """Raised when custom root certificate material is empty or malformed."""


class InvalidEndpointError(ConfigError):
    """Raised when an endpoint does not resolve to a usable URL for this client."""


class TransportError(TransferError):
    """Raised on connection, DNS, TLS or socket failures."""


class TLSVerificationError(TransportError):
    """Raised when the server certificate is rejected by the trust policy."""


class StatusError(TransferError):
    """Raised when a response status is outside the 2xx range."""

    def __init__(self, status: int, url: str, message: Optional[str] = None) -> None:
        self.status = status
        self.url = url
        super().__init__(message or f"HTTP {status} from {url}")


class UploadError(StatusError):
    """Raised when the server rejects a multipart upload."""


class DecodeError(TransferError):
    """Raised for malformed JSON bodies or archive streams."""


class FilesystemError(TransferError):
    """Raised when local files or directories cannot be read or written."""


class PathSafetyError(TransferError):
    """Raised when an archive entry would land outside the destination directory."""

    def __init__(self, entry_name: str, reason: str) -> None:
        self.entry_name = entry_name
        self.reason = reason
        super().__init__(f"Unsafe archive entry {entry_name!r}: {reason}")
