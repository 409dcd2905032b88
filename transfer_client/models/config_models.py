"""Models describing client configuration and TLS trust policy."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ConfigError

SUPPORTED_SCHEMES = ("http", "https")


class SystemDefault(BaseModel):
    """Trust the platform root store."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["system_default"] = "system_default"


class InsecureSkipVerify(BaseModel):
    """Accept any server certificate. Must be opted into explicitly."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["insecure_skip_verify"] = "insecure_skip_verify"


class CustomRootCertificate(BaseModel):
    """Trust only the PEM certificate(s) in ``pem``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["custom_root_certificate"] = "custom_root_certificate"
    pem: bytes


TrustPolicy = Annotated[
    Union[SystemDefault, InsecureSkipVerify, CustomRootCertificate],
    Field(discriminator="kind"),
]


class ClientConfig(BaseModel):
    """Immutable settings owned by a single transfer client.

    Invalid settings raise ``ConfigError``, never a bare pydantic
    ``ValidationError``.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str
    trust_policy: TrustPolicy = Field(default_factory=SystemDefault)
    default_headers: Tuple[Tuple[str, str], ...] = ()
    timeout: Optional[float] = None
    blocking_workers: int = Field(default=4, ge=1)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid client configuration: {exc}") from exc

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in SUPPORTED_SCHEMES:
            raise ConfigError(f"base_url must use http or https, got {value!r}")
        if not parsed.netloc:
            raise ConfigError(f"base_url must be absolute, got {value!r}")
        return value

    @property
    def scheme(self) -> str:
        return urlparse(self.base_url).scheme
