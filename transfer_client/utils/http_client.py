"""Async HTTP client bound to a base address and a TLS trust policy."""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Iterable, Mapping, Optional, Tuple, TypeVar, Union
from urllib.parse import urljoin, urlparse

import aiohttp
from multidict import CIMultiDict

from ..errors import InvalidEndpointError, StatusError, TLSVerificationError, TransportError
from ..models import ClientConfig, TransferRequest, TransferResponse
from .tls import TrustContext, build_trust_context

HeaderInput = Union[Mapping[str, str], Iterable[Tuple[str, str]], None]
T = TypeVar("T")


def _header_pairs(headers: HeaderInput) -> list[tuple[str, str]]:
    if headers is None:
        return []
    if isinstance(headers, Mapping):
        return list(headers.items())
    return list(headers)


def merge_headers(defaults: HeaderInput, overlay: HeaderInput) -> CIMultiDict:
    """Merges ``overlay`` over ``defaults``.

    A name present in the overlay replaces every default value of that name;
    all other values, duplicates included, are kept.
    """

    merged: CIMultiDict = CIMultiDict(_header_pairs(defaults))
    overlay_pairs = _header_pairs(overlay)
    for name in {name.lower() for name, _ in overlay_pairs}:
        merged.popall(name, None)
    merged.extend(overlay_pairs)
    return merged


def is_success(status: int) -> bool:
    return 200 <= status < 300


def resolve_endpoint(base_url: str, endpoint: str) -> str:
    """Joins ``endpoint`` onto ``base_url`` using standard URL merging.

    ``/x`` replaces the base path, ``x`` is merged relative to it and absolute
    URLs pass through as long as they keep the base scheme.
    """

    base_scheme = urlparse(base_url).scheme
    url = urljoin(base_url, endpoint or "")
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise InvalidEndpointError(f"Endpoint {endpoint!r} does not resolve to an absolute URL")
    if parsed.scheme != base_scheme:
        raise InvalidEndpointError(
            f"Endpoint {endpoint!r} uses scheme {parsed.scheme!r}, client is bound to {base_scheme!r}"
        )
    return url


class TransferClient:
    """Issues requests against ``config.base_url`` over one pooled transport.

    The configuration is immutable, so a single instance can be shared by
    concurrent tasks. Blocking work (file IO, archives) goes through
    ``run_blocking`` and never runs on the event loop.
    """

    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self._base_scheme = config.scheme
        self._trust: TrustContext = build_trust_context(config.trust_policy, self._base_scheme)
        self._timeout = aiohttp.ClientTimeout(total=config.timeout)
        self._executor = ThreadPoolExecutor(
            max_workers=config.blocking_workers,
            thread_name_prefix="transfer-blocking",
        )

        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock: Optional[asyncio.Lock] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def trust_context(self) -> TrustContext:
        return self._trust

    def resolve(self, endpoint: str) -> str:
        return resolve_endpoint(self.config.base_url, endpoint)

    def build_request(
        self,
        method: str,
        endpoint: str,
        headers: HeaderInput = None,
        body_kind: str = "none",
    ) -> TransferRequest:
        merged = merge_headers(self.config.default_headers, headers)
        return TransferRequest(
            method=method.upper(),
            url=self.resolve(endpoint),
            headers=tuple(merged.items()),
            body_kind=body_kind,
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        headers: HeaderInput = None,
        *,
        json: Any = None,
        data: Optional[aiohttp.FormData] = None,
    ) -> TransferResponse:
        """Sends one request and reads the whole body.

        Raises ``StatusError`` for any status outside 2xx, ``TransportError``
        for network and TLS failures.
        """

        async with self.stream(method, endpoint, headers, json=json, data=data) as resp:
            try:
                body = await resp.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logging.error("Reading response body from %s failed: %s", resp.url, exc)
                raise TransportError(f"Failed to read response from {resp.url}: {exc}") from exc
            return TransferResponse(
                status=resp.status,
                url=str(resp.url),
                headers=tuple(resp.headers.items()),
                body=body,
            )

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        endpoint: str,
        headers: HeaderInput = None,
        *,
        json: Any = None,
        data: Optional[aiohttp.FormData] = None,
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """Yields the raw response after the 2xx check, body still unread."""

        body_kind = "json" if json is not None else "multipart" if data is not None else "none"
        prepared = self.build_request(method, endpoint, headers, body_kind)
        session = await self._get_session()
        logging.debug("%s %s", prepared.method, prepared.url)
        try:
            resp = await session.request(
                prepared.method,
                prepared.url,
                headers=CIMultiDict(prepared.headers),
                json=json,
                data=data,
            )
        except aiohttp.ClientConnectorCertificateError as exc:
            logging.error("TLS verification failed for %s: %s", prepared.url, exc)
            raise TLSVerificationError(f"Certificate rejected for {prepared.url}: {exc}") from exc
        except aiohttp.ClientSSLError as exc:
            logging.error("TLS handshake failed for %s: %s", prepared.url, exc)
            raise TLSVerificationError(f"TLS handshake failed for {prepared.url}: {exc}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logging.error("%s %s failed: %s", prepared.method, prepared.url, exc)
            raise TransportError(f"{prepared.method} {prepared.url} failed: {exc}") from exc

        try:
            if not is_success(resp.status):
                logging.error("%s %s returned HTTP %s", prepared.method, prepared.url, resp.status)
                raise StatusError(resp.status, prepared.url)
            yield resp
        finally:
            resp.release()

    async def run_blocking(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Runs ``func`` on the client's worker pool and awaits its result."""

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    async def _get_session(self) -> aiohttp.ClientSession:
        current_loop = asyncio.get_running_loop()
        if self._session:
            if (
                self._session.closed
                or not self._session_loop
                or self._session_loop.is_closed()
                or self._session_loop is not current_loop
            ):
                await self._shutdown_session()

        if self._session_lock is None or self._session_loop is not current_loop:
            self._session_lock = asyncio.Lock()

        async with self._session_lock:
            if self._session and not self._session.closed:
                return self._session
            connector = aiohttp.TCPConnector(ssl=self._trust.for_aiohttp())
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
            )
            self._session_loop = current_loop
        return self._session

    async def _shutdown_session(self) -> None:
        session, self._session = self._session, None
        self._session_loop = None
        if session and not session.closed:
            await session.close()

    async def close(self) -> None:
        await self._shutdown_session()
        self._executor.shutdown(wait=False)

    async def __aenter__(self) -> "TransferClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()
