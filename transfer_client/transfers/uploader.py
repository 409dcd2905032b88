"""Multipart uploads of buffers, files and zipped files/folders."""

from __future__ import annotations

import logging
from pathlib import Path

import aiohttp

from ..errors import StatusError, UploadError
from ..models import TransferResponse
from ..utils.file_utils import open_binary, read_file_bytes
from ..utils.http_client import HeaderInput, TransferClient
from .archive_stager import staged_zip

DEFAULT_FIELD_NAME = "file"
UPLOAD_CONTENT_TYPE = "application/octet-stream"


def build_upload_form(field_name: str, filename: str, payload) -> aiohttp.FormData:
    """Single-part form carrying ``payload`` as an octet-stream file."""

    form = aiohttp.FormData()
    form.add_field(
        field_name or DEFAULT_FIELD_NAME,
        payload,
        filename=filename,
        content_type=UPLOAD_CONTENT_TYPE,
    )
    return form


class Uploader:
    """Posts files to an endpoint as ``multipart/form-data``.

    Every operation ends in exactly one POST carrying one part. Any non-2xx
    answer raises ``UploadError``.
    """

    def __init__(self, http_client: TransferClient) -> None:
        self._http_client = http_client

    async def upload_buffer(
        self,
        url: str,
        filename: str,
        data: bytes,
        field_name: str = DEFAULT_FIELD_NAME,
        headers: HeaderInput = None,
    ) -> TransferResponse:
        form = build_upload_form(field_name, filename, bytes(data))
        logging.info("Uploading %s (%s bytes) to %s", filename, len(data), url)
        return await self._post(url, form, headers)

    async def upload_file(
        self,
        url: str,
        path,
        field_name: str = DEFAULT_FIELD_NAME,
        headers: HeaderInput = None,
    ) -> TransferResponse:
        """Reads ``path`` fully into memory, then uploads it under its base name.

        Memory use grows with the file size; see ``upload_file_streaming``.
        """

        source = Path(path)
        data = await self._http_client.run_blocking(read_file_bytes, source)
        return await self.upload_buffer(url, source.name, data, field_name, headers)

    async def upload_file_streaming(
        self,
        url: str,
        path,
        field_name: str = DEFAULT_FIELD_NAME,
        headers: HeaderInput = None,
    ) -> TransferResponse:
        source = Path(path)
        handle = await self._http_client.run_blocking(open_binary, source)
        with handle:
            form = build_upload_form(field_name, source.name, handle)
            logging.info("Streaming upload of %s to %s", source, url)
            return await self._post(url, form, headers)

    async def upload_file_as_zip(
        self,
        url: str,
        path,
        field_name: str = DEFAULT_FIELD_NAME,
        headers: HeaderInput = None,
    ) -> TransferResponse:
        async with staged_zip(path, self._http_client.run_blocking) as archive_path:
            return await self.upload_file(url, archive_path, field_name, headers)

    async def upload_folder_as_zip(
        self,
        url: str,
        path,
        field_name: str = DEFAULT_FIELD_NAME,
        headers: HeaderInput = None,
    ) -> TransferResponse:
        async with staged_zip(path, self._http_client.run_blocking, folder=True) as archive_path:
            return await self.upload_file(url, archive_path, field_name, headers)

    async def _post(self, url: str, form: aiohttp.FormData, headers: HeaderInput) -> TransferResponse:
        try:
            return await self._http_client.request("POST", url, headers, data=form)
        except StatusError as exc:
            raise UploadError(exc.status, exc.url, f"Upload to {exc.url} rejected with HTTP {exc.status}") from exc
