"""Downloads payloads into memory, onto disk, or straight into an extracted tree."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiohttp

from ..errors import FilesystemError, TransportError
from ..models import ArchiveFormat, ExtractionResult
from ..utils.file_utils import discard_file, open_sibling_tempfile, replace_file
from ..utils.http_client import HeaderInput, TransferClient
from .archive_extractor import ArchiveExtractor

CHUNK_SIZE = 1 << 14


class Downloader:
    """Fetches bodies of 2xx responses."""

    def __init__(self, http_client: TransferClient) -> None:
        self._http_client = http_client
        self._extractor = ArchiveExtractor(http_client)

    async def fetch_bytes(self, url: str, headers: HeaderInput = None) -> bytes:
        """Returns the full body. An empty 2xx body yields ``b""``."""

        response = await self._http_client.request("GET", url, headers)
        return response.body

    async def fetch_to_path(self, url: str, dest_path, headers: HeaderInput = None) -> Path:
        """Streams the body into ``dest_path``.

        Data goes to a temporary sibling file that replaces ``dest_path`` only
        once the whole body has arrived. On any failure, cancellation
        included, the previous content of ``dest_path`` is left as it was.
        An empty 2xx body produces an empty file.
        """

        dest = Path(dest_path)
        async with self._http_client.stream("GET", url, headers) as resp:
            file_obj, tmp_path = open_sibling_tempfile(dest)
            completed = False
            try:
                size = 0
                with file_obj:
                    try:
                        async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                            file_obj.write(chunk)
                            size += len(chunk)
                    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                        logging.error("Download from %s interrupted: %s", url, exc)
                        raise TransportError(f"Download from {url} interrupted: {exc}") from exc
                    except OSError as exc:
                        raise FilesystemError(f"Cannot write {tmp_path}: {exc}") from exc
                replace_file(tmp_path, dest)
                completed = True
            finally:
                if not completed:
                    discard_file(tmp_path)
        logging.info("Saved %s bytes from %s to %s", size, url, dest)
        return dest

    async def fetch_archive_to_dir(
        self,
        url: str,
        archive_format: ArchiveFormat,
        destination,
        headers: HeaderInput = None,
    ) -> ExtractionResult:
        """Downloads an archive and extracts it below ``destination``."""

        data = await self.fetch_bytes(url, headers)
        return await self._extractor.extract(data, ArchiveFormat(archive_format), destination)
