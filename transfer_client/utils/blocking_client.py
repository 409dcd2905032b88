"""Synchronous counterpart of ``TransferClient`` for callers without an event loop."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter

from ..errors import FilesystemError, StatusError, TLSVerificationError, TransportError, UploadError
from ..models import ClientConfig, InsecureSkipVerify, TransferResponse
from .file_utils import discard_file, open_sibling_tempfile, read_file_bytes, replace_file
from .http_client import HeaderInput, is_success, merge_headers, resolve_endpoint
from .tls import TrustContext, build_trust_context

CHUNK_SIZE = 1 << 14


def fold_headers(headers) -> dict:
    """Collapses repeated header names into one comma-joined value for requests."""

    folded: dict = {}
    for name, value in headers.items():
        key = next((existing for existing in folded if existing.lower() == name.lower()), name)
        folded[key] = f"{folded[key]}, {value}" if key in folded else value
    return folded


def _to_transfer_response(response: requests.Response) -> TransferResponse:
    return TransferResponse(
        status=response.status_code,
        url=response.url,
        headers=tuple(response.headers.items()),
        body=response.content,
    )


class TrustAdapter(HTTPAdapter):
    """Mounts a prepared ``ssl.SSLContext`` into urllib3's pool manager."""

    def __init__(self, trust: TrustContext, **kwargs: Any) -> None:
        self._trust = trust
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        if self._trust.ssl_context is not None:
            kwargs["ssl_context"] = self._trust.ssl_context
        super().init_poolmanager(*args, **kwargs)

    def build_connection_pool_key_attributes(self, request, verify, cert=None):
        host_params, pool_kwargs = super().build_connection_pool_key_attributes(request, verify, cert)
        if self._trust.ssl_context is not None:
            # urllib3 would load these into the shared context; its roots are fixed at construction.
            pool_kwargs.pop("ca_certs", None)
            pool_kwargs.pop("ca_cert_dir", None)
        return host_params, pool_kwargs

    def cert_verify(self, conn, url: str, verify, cert) -> None:
        if self._trust.ssl_context is None:
            super().cert_verify(conn, url, verify, cert)
            return
        if url.lower().startswith("https"):
            conn.cert_reqs = "CERT_REQUIRED" if verify else "CERT_NONE"
            conn.ca_certs = None
            conn.ca_cert_dir = None


class BlockingTransferClient:
    """Same configuration, trust policy and success rule as ``TransferClient``,
    backed by a ``requests.Session``."""

    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self._trust = build_trust_context(config.trust_policy, config.scheme)
        self._session = requests.Session()
        self._session.mount("https://", TrustAdapter(self._trust))
        self._session.mount("http://", HTTPAdapter())
        # requests re-enables verification per request unless told otherwise.
        # REQUESTS_CA_BUNDLE / CURL_CA_BUNDLE still reach the adapter, which ignores them.
        self._session.verify = not isinstance(config.trust_policy, InsecureSkipVerify)

    def request(
        self,
        method: str,
        endpoint: str,
        headers: HeaderInput = None,
        *,
        json: Any = None,
        files: Optional[dict] = None,
        stream: bool = False,
    ) -> requests.Response:
        """Sends one request; raises ``StatusError`` for anything outside 2xx."""

        url = resolve_endpoint(self.config.base_url, endpoint)
        merged = merge_headers(self.config.default_headers, headers)
        try:
            response = self._session.request(
                method.upper(),
                url,
                headers=fold_headers(merged),
                json=json,
                files=files,
                stream=stream,
                timeout=self.config.timeout,
            )
        except requests.exceptions.SSLError as exc:
            logging.error("TLS verification failed for %s: %s", url, exc)
            raise TLSVerificationError(f"Certificate rejected for {url}: {exc}") from exc
        except requests.RequestException as exc:
            logging.error("HTTP %s to %s failed: %s", method.upper(), url, exc)
            raise TransportError(f"{method.upper()} {url} failed: {exc}") from exc

        if not is_success(response.status_code):
            response.close()
            logging.error("%s %s returned HTTP %s", method.upper(), url, response.status_code)
            raise StatusError(response.status_code, url)
        return response

    def fetch(self, method: str, endpoint: str, headers: HeaderInput = None, *, json: Any = None) -> TransferResponse:
        return _to_transfer_response(self.request(method, endpoint, headers, json=json))

    def fetch_bytes(self, endpoint: str, headers: HeaderInput = None) -> bytes:
        return self.request("GET", endpoint, headers).content

    def fetch_to_path(self, endpoint: str, dest_path, headers: HeaderInput = None) -> Path:
        """Streams a download into ``dest_path`` through a temp file and atomic rename."""

        dest = Path(dest_path)
        with self.request("GET", endpoint, headers, stream=True) as resp:
            file_obj, tmp_path = open_sibling_tempfile(dest)
            completed = False
            try:
                with file_obj:
                    try:
                        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                            if chunk:
                                file_obj.write(chunk)
                    except requests.RequestException as exc:
                        logging.error("Download from %s interrupted: %s", resp.url, exc)
                        raise TransportError(f"Download from {resp.url} interrupted: {exc}") from exc
                    except OSError as exc:
                        raise FilesystemError(f"Cannot write {tmp_path}: {exc}") from exc
                replace_file(tmp_path, dest)
                completed = True
            finally:
                if not completed:
                    discard_file(tmp_path)
        logging.info("Saved %s to %s", resp.url, dest)
        return dest

    def upload_buffer(
        self,
        endpoint: str,
        filename: str,
        data: bytes,
        field_name: str = "file",
        headers: HeaderInput = None,
    ) -> TransferResponse:
        files = {field_name or "file": (filename, bytes(data), "application/octet-stream")}
        try:
            response = self.request("POST", endpoint, headers, files=files)
        except StatusError as exc:
            raise UploadError(exc.status, exc.url, f"Upload to {exc.url} rejected with HTTP {exc.status}") from exc
        return _to_transfer_response(response)

    def upload_file(self, endpoint: str, path, field_name: str = "file", headers: HeaderInput = None) -> TransferResponse:
        source = Path(path)
        return self.upload_buffer(endpoint, source.name, read_file_bytes(source), field_name, headers)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "BlockingTransferClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
