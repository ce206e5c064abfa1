"""
Request input access for controllers.

RequestInput is a plain snapshot of everything the client submitted:
query parameters merged with the JSON object or form body (body keys win).
Controllers validate against RequestInput.all().
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class RequestInput:
    def __init__(self, data: Optional[Mapping[str, Any]] = None, request: Optional[Request] = None):
        self._data: Dict[str, Any] = dict(data or {})
        self.request = request

    @classmethod
    async def from_request(cls, request: Request) -> "RequestInput":
        """
        Collect query parameters and body input from a FastAPI request.

        Raises:
            HTTPException 400: Body is declared JSON but cannot be parsed
        """
        data: Dict[str, Any] = {}
        for key in request.query_params.keys():
            values = request.query_params.getlist(key)
            data[key] = values[0] if len(values) == 1 else values

        content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type == "application/json" or content_type.endswith("+json"):
            body = await request.body()
            if body:
                try:
                    payload = json.loads(body)
                except ValueError:
                    logger.info(f"Rejecting malformed JSON body on {request.method} {request.url.path}")
                    raise HTTPException(status_code=400, detail="Malformed JSON body")
                if isinstance(payload, dict):
                    data.update(payload)
        elif content_type in FORM_CONTENT_TYPES:
            form = await request.form()
            for key in form.keys():
                values = form.getlist(key)
                data[key] = values[0] if len(values) == 1 else values

        return cls(data, request)

    def all(self) -> Dict[str, Any]:
        return dict(self._data)

    def input(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def has(self, *keys: str) -> bool:
        return all(key in self._data for key in keys)

    def only(self, *keys: str) -> Dict[str, Any]:
        return {key: self._data[key] for key in keys if key in self._data}

    def except_(self, *keys: str) -> Dict[str, Any]:
        return {key: value for key, value in self._data.items() if key not in keys}

    def __repr__(self) -> str:
        return f"RequestInput({self._data!r})"


async def request_input(request: Request) -> RequestInput:
    """FastAPI dependency providing the current request's input."""
    return await RequestInput.from_request(request)
