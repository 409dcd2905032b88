import ssl

import pytest

from transfer_client import (
    ClientConfig,
    ConfigError,
    CustomRootCertificate,
    InsecureSkipVerify,
    InvalidCertificateError,
    JsonAPI,
    SystemDefault,
    TLSVerificationError,
    TransferClient,
    TransportError,
    build_trust_context,
)


def test_plaintext_scheme_ignores_policy() -> None:
    context = build_trust_context(CustomRootCertificate(pem=b"not a certificate"), "http")

    assert context.ssl_context is None
    assert context.encrypted is False
    assert context.for_aiohttp() is True


def test_system_default_uses_verifying_context() -> None:
    context = build_trust_context(SystemDefault(), "https")

    assert context.ssl_context.verify_mode == ssl.CERT_REQUIRED
    assert context.ssl_context.check_hostname is True


def test_insecure_context_disables_verification() -> None:
    context = build_trust_context(InsecureSkipVerify(), "https")

    assert context.ssl_context.verify_mode == ssl.CERT_NONE
    assert context.ssl_context.check_hostname is False


def test_custom_root_is_the_only_trusted_root(tls_material) -> None:
    context = build_trust_context(CustomRootCertificate(pem=tls_material.ca_pem), "https")

    assert context.ssl_context.cert_store_stats()["x509"] == 1
    assert context.ssl_context.verify_mode == ssl.CERT_REQUIRED


def test_custom_root_accepts_concatenated_certificates(tls_material) -> None:
    bundle = tls_material.ca_pem + tls_material.other_ca_pem
    context = build_trust_context(CustomRootCertificate(pem=bundle), "https")

    assert context.ssl_context.cert_store_stats()["x509"] == 2


@pytest.mark.parametrize(
    "pem",
    [
        b"",
        b"hello world",
        b"-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n",
        "été".encode("utf-8"),
    ],
)
def test_invalid_certificate_material_is_rejected(pem: bytes) -> None:
    with pytest.raises(InvalidCertificateError):
        build_trust_context(CustomRootCertificate(pem=pem), "https")


def test_bad_certificate_fails_client_construction() -> None:
    config = ClientConfig(base_url="https://example.invalid/", trust_policy=CustomRootCertificate(pem=b"junk"))

    with pytest.raises(ConfigError):
        TransferClient(config)


def test_unknown_scheme_is_a_config_error() -> None:
    with pytest.raises(ConfigError):
        build_trust_context(SystemDefault(), "ftp")


@pytest.mark.asyncio
async def test_insecure_policy_accepts_untrusted_server(https_server) -> None:
    config = ClientConfig(base_url=https_server.url, trust_policy=InsecureSkipVerify())
    async with TransferClient(config) as client:
        assert await JsonAPI(client).get("/hello") == {"ok": True}


@pytest.mark.asyncio
async def test_system_default_rejects_untrusted_server(https_server) -> None:
    config = ClientConfig(base_url=https_server.url, trust_policy=SystemDefault())
    async with TransferClient(config) as client:
        with pytest.raises(TLSVerificationError) as excinfo:
            await client.request("GET", "/hello")

    assert isinstance(excinfo.value, TransportError)


@pytest.mark.asyncio
async def test_custom_root_trusts_its_issuer(https_server, tls_material) -> None:
    config = ClientConfig(base_url=https_server.url, trust_policy=CustomRootCertificate(pem=tls_material.ca_pem))
    async with TransferClient(config) as client:
        response = await client.request("GET", "/hello")

    assert response.status == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_custom_root_rejects_unrelated_issuer(https_server, tls_material) -> None:
    config = ClientConfig(
        base_url=https_server.url,
        trust_policy=CustomRootCertificate(pem=tls_material.other_ca_pem),
    )
    async with TransferClient(config) as client:
        with pytest.raises(TLSVerificationError):
            await client.request("GET", "/hello")
