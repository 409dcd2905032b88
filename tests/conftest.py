"""
Shared fixtures: throwaway certificate authorities and local aiohttp servers.

Provides:
- ``tls_material``: a CA, a server certificate for 127.0.0.1 signed by it,
  and an unrelated CA
- ``http_server`` / ``https_server``: live servers on 127.0.0.1
- ``client``: a TransferClient bound to ``http_server``
"""

import asyncio
import ipaddress
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import web
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from transfer_client import ClientConfig, TransferClient


# ============================================================================
# Certificates
# ============================================================================


def _key_usage(ca: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=not ca,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=ca,
        crl_sign=ca,
        encipher_only=False,
        decipher_only=False,
    )


def _make_ca(common_name: str):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(ca=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def _make_server_cert(ca_key, ca_cert):
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "127.0.0.1")]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.IPAddress(ipaddress.ip_address("127.0.0.1")), x509.DNSName("localhost")]
            ),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(ca=False), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    return key, cert


def _pem(cert) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


@dataclass
class TLSMaterial:
    ca_pem: bytes
    other_ca_pem: bytes
    server_cert_path: Path
    server_key_path: Path

    def server_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.load_cert_chain(str(self.server_cert_path), str(self.server_key_path))
        return context


@pytest.fixture(scope="session")
def tls_material(tmp_path_factory) -> TLSMaterial:
    out = tmp_path_factory.mktemp("tls")
    ca_key, ca_cert = _make_ca("transfer-client test CA")
    _, other_ca_cert = _make_ca("unrelated test CA")
    server_key, server_cert = _make_server_cert(ca_key, ca_cert)

    cert_path = out / "server.pem"
    key_path = out / "server.key"
    cert_path.write_bytes(_pem(server_cert))
    key_path.write_bytes(
        server_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return TLSMaterial(
        ca_pem=_pem(ca_cert),
        other_ca_pem=_pem(other_ca_cert),
        server_cert_path=cert_path,
        server_key_path=key_path,
    )


# ============================================================================
# Test server
# ============================================================================

UPLOADS = web.AppKey("uploads", list)
PAYLOADS = web.AppKey("payloads", dict)
SLOW_STARTED = web.AppKey("slow_started", asyncio.Event)


async def _hello(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


async def _bytes(request: web.Request) -> web.Response:
    size = int(request.match_info["size"])
    fill = request.query.get("fill", "x").encode()[:1] or b"x"
    return web.Response(body=fill * size, content_type="application/octet-stream")


async def _empty(request: web.Request) -> web.Response:
    return web.Response(status=200, body=b"")


async def _status(request: web.Request) -> web.Response:
    await request.read()
    return web.Response(status=int(request.match_info["code"]), text='{"ok": true}')


async def _headers(request: web.Request) -> web.Response:
    return web.json_response([[name, value] for name, value in request.headers.items()])


async def _echo_json(request: web.Request) -> web.Response:
    body = await request.json() if request.can_read_body else None
    return web.json_response({"method": request.method, "body": body})


async def _not_json(request: web.Request) -> web.Response:
    return web.Response(text="<html>nope</html>", content_type="text/html")


async def _upload(request: web.Request) -> web.Response:
    parts = []
    reader = await request.multipart()
    async for part in reader:
        parts.append(
            {
                "name": part.name,
                "filename": part.filename,
                "content_type": part.headers.get("Content-Type"),
                "data": bytes(await part.read()),
            }
        )
    request.app[UPLOADS].append(parts)
    return web.json_response({"parts": len(parts)})


async def _payload(request: web.Request) -> web.Response:
    data = request.app[PAYLOADS].get(request.match_info["name"])
    if data is None:
        raise web.HTTPNotFound()
    return web.Response(body=data, content_type="application/octet-stream")


async def _slow(request: web.Request) -> web.StreamResponse:
    resp = web.StreamResponse()
    await resp.prepare(request)
    await resp.write(b"a" * 1024)
    request.app[SLOW_STARTED].set()
    await asyncio.sleep(5)
    await resp.write(b"b" * 1024)
    return resp


def build_app() -> web.Application:
    app = web.Application()
    app[UPLOADS] = []
    app[PAYLOADS] = {}
    app[SLOW_STARTED] = asyncio.Event()
    app.router.add_get("/hello", _hello)
    app.router.add_get("/bytes/{size}", _bytes)
    app.router.add_get("/empty", _empty)
    app.router.add_route("*", "/status/{code}", _status)
    app.router.add_get("/headers", _headers)
    app.router.add_route("*", "/echo", _echo_json)
    app.router.add_get("/not-json", _not_json)
    app.router.add_post("/upload", _upload)
    app.router.add_get("/payload/{name}", _payload)
    app.router.add_route("*", "/slow", _slow)
    return app


@asynccontextmanager
async def serve(app: web.Application, ssl_context=None):
    runner = web.AppRunner(app, handler_cancellation=True)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0, ssl_context=ssl_context)
    await site.start()
    try:
        yield runner.addresses[0][1]
    finally:
        await runner.cleanup()


@dataclass
class LiveServer:
    app: web.Application
    url: str

    @property
    def uploads(self) -> list:
        return self.app[UPLOADS]

    @property
    def payloads(self) -> dict:
        return self.app[PAYLOADS]

    @property
    def slow_started(self) -> asyncio.Event:
        return self.app[SLOW_STARTED]


@pytest_asyncio.fixture
async def http_server():
    app = build_app()
    async with serve(app) as port:
        yield LiveServer(app=app, url=f"http://127.0.0.1:{port}")


@pytest_asyncio.fixture
async def https_server(tls_material):
    app = build_app()
    async with serve(app, ssl_context=tls_material.server_context()) as port:
        yield LiveServer(app=app, url=f"https://127.0.0.1:{port}")


@pytest_asyncio.fixture
async def client(http_server):
    async with TransferClient(ClientConfig(base_url=http_server.url + "/")) as transfer_client:
        yield transfer_client
