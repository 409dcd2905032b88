"""Turns a declarative trust policy into an ``ssl.SSLContext``."""

from __future__ import annotations

import logging
import re
import ssl
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from ..errors import ConfigError, InvalidCertificateError
from ..models.config_models import (
    SUPPORTED_SCHEMES,
    CustomRootCertificate,
    InsecureSkipVerify,
    SystemDefault,
    TrustPolicy,
)

PEM_CERTIFICATE = re.compile(
    r"-----BEGIN CERTIFICATE-----\s+[A-Za-z0-9+/=\s]+?-----END CERTIFICATE-----",
)


class TrustContext(BaseModel):
    """Transport-level trust settings produced once per client."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    scheme: str
    ssl_context: Optional[ssl.SSLContext] = None

    @property
    def encrypted(self) -> bool:
        return self.scheme == "https"

    def for_aiohttp(self) -> Union[ssl.SSLContext, bool]:
        """Value for aiohttp's ``ssl=`` connector argument."""

        if self.ssl_context is None:
            return True
        return self.ssl_context


def build_trust_context(policy: TrustPolicy, scheme: str) -> TrustContext:
    """Builds the trust context for ``scheme`` according to ``policy``.

    Plaintext schemes ignore the policy. Bad certificate material raises
    ``InvalidCertificateError``; the system store is never used as a fallback.
    """

    scheme = (scheme or "").lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise ConfigError(f"Unsupported scheme {scheme!r}")

    if scheme == "http":
        if not isinstance(policy, SystemDefault):
            logging.warning("Ignoring %s trust policy for plaintext http base address", policy.kind)
        return TrustContext(scheme=scheme)

    if isinstance(policy, InsecureSkipVerify):
        logging.warning("TLS certificate verification is DISABLED for this client")
        return TrustContext(scheme=scheme, ssl_context=_insecure_context())
    if isinstance(policy, CustomRootCertificate):
        return TrustContext(scheme=scheme, ssl_context=_custom_root_context(policy.pem))
    return TrustContext(scheme=scheme, ssl_context=ssl.create_default_context())


def _insecure_context() -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _custom_root_context(pem: bytes) -> ssl.SSLContext:
    try:
        text = pem.decode("ascii")
    except UnicodeDecodeError as exc:
        raise InvalidCertificateError("Root certificate is not ASCII PEM data") from exc

    blocks = PEM_CERTIFICATE.findall(text)
    if not blocks:
        raise InvalidCertificateError("No PEM certificate found in root certificate data")

    # PROTOCOL_TLS_CLIENT starts with an empty store: these roots are the only ones trusted.
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        context.load_verify_locations(cadata="\n".join(blocks))
    except (ssl.SSLError, ValueError) as exc:
        logging.error("Failed to load root certificate: %s", exc)
        raise InvalidCertificateError(f"Malformed root certificate: {exc}") from exc

    loaded = context.cert_store_stats().get("x509", 0)
    if loaded == 0:
        raise InvalidCertificateError("Root certificate data yielded no certificates")
    logging.debug("Installed %s custom root certificate(s)", loaded)
    return context
