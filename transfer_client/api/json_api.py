"""JSON verb helpers layered over ``TransferClient.request``."""

from __future__ import annotations

import logging
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import DecodeError
from ..utils.http_client import HeaderInput, TransferClient

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_HEADERS = (("accept", "application/json"),)


class JsonAPI:
    """GET/POST/PUT/PATCH/DELETE with JSON bodies and optional typed decode."""

    def __init__(self, http_client: TransferClient) -> None:
        self._client = http_client

    async def call(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        headers: HeaderInput = None,
        model: Optional[Type[ModelT]] = None,
    ) -> Any:
        overlay = list(JSON_HEADERS)
        if headers:
            overlay.extend(headers.items() if hasattr(headers, "items") else headers)
        response = await self._client.request(method, endpoint, overlay, json=body)
        if not response.body:
            payload = None
        else:
            payload = response.json()
        if model is None:
            return payload
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            logging.error("Response from %s does not match %s: %s", response.url, model.__name__, exc)
            raise DecodeError(f"Response from {response.url} does not match {model.__name__}") from exc

    async def get(self, endpoint: str, headers: HeaderInput = None, model: Optional[Type[ModelT]] = None) -> Any:
        return await self.call("GET", endpoint, None, headers, model)

    async def post(self, endpoint: str, body: Any = None, headers: HeaderInput = None, model: Optional[Type[ModelT]] = None) -> Any:
        return await self.call("POST", endpoint, body, headers, model)

    async def put(self, endpoint: str, body: Any = None, headers: HeaderInput = None, model: Optional[Type[ModelT]] = None) -> Any:
        return await self.call("PUT", endpoint, body, headers, model)

    async def patch(self, endpoint: str, body: Any = None, headers: HeaderInput = None, model: Optional[Type[ModelT]] = None) -> Any:
        return await self.call("PATCH", endpoint, body, headers, model)

    async def delete(self, endpoint: str, headers: HeaderInput = None, model: Optional[Type[ModelT]] = None) -> Any:
        return await self.call("DELETE", endpoint, None, headers, model)
