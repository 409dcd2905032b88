"""Data models for client configuration, trust policy and transfers."""

from .config_models import ClientConfig, CustomRootCertificate, InsecureSkipVerify, SystemDefault, TrustPolicy
from .transfer_models import ArchiveFormat, ExtractionResult, TransferRequest, TransferResponse

__all__ = [
    "ClientConfig",
    "TrustPolicy",
    "SystemDefault",
    "InsecureSkipVerify",
    "CustomRootCertificate",
    "ArchiveFormat",
    "TransferRequest",
    "TransferResponse",
    "ExtractionResult",
]
