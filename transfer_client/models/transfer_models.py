"""Models for requests, responses and archive handling."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, List, Literal, Tuple

from pydantic import BaseModel, ConfigDict

from ..errors import ConfigError, DecodeError


class ArchiveFormat(str, Enum):
    """Archive container formats understood by the extractor."""

    ZIP = "zip"
    TAR = "tar"
    GZIP_TAR = "gzip"

    @classmethod
    def from_tag(cls, tag: str) -> "ArchiveFormat":
        try:
            return cls((tag or "").strip().lower())
        except ValueError as exc:
            raise ConfigError(f"Unknown archive format {tag!r}; expected zip, tar or gzip") from exc


class TransferRequest(BaseModel):
    """A fully resolved request, built per call."""

    method: str
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body_kind: Literal["none", "json", "multipart"] = "none"


class TransferResponse(BaseModel):
    """A completed response whose body has been read in full."""

    model_config = ConfigDict(frozen=True)

    status: int
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON, raising ``DecodeError`` on malformed content."""

        try:
            return json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError(f"Response from {self.url} is not valid JSON: {exc}") from exc


class ExtractionResult(BaseModel):
    """What an extraction created below ``destination``."""

    destination: Path
    directories: List[str] = []
    files: List[str] = []
