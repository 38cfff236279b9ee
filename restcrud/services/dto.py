"""Request DTO passed from controllers into service calls.

The DTO keeps query-string parameters and body parameters apart so that
lookups can prefer one over the other (grid paging reads the query string
first and falls back to the body).
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import Any

from starlette.requests import Request

logger = logging.getLogger("uvicorn.error")

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class RequestDto:
    """Container for the parameters of one request."""

    def __init__(
        self,
        query: Mapping[str, Any] | None = None,
        request: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
    ) -> None:
        self.query: dict[str, Any] = dict(query or {})
        self.request: dict[str, Any] = dict(request or {})
        self.files: dict[str, Any] = dict(files or {})

    @classmethod
    async def from_request(cls, request: Request) -> RequestDto:
        """Build a DTO from a Starlette request.

        JSON objects and form posts populate the body bag; anything else
        (empty body, invalid JSON, JSON arrays/scalars) leaves it empty.
        """
        query = dict(request.query_params)
        if request.method in ("GET", "HEAD", "DELETE"):
            return cls(query=query)

        content_type = request.headers.get("content-type", "")
        if content_type.startswith(_FORM_CONTENT_TYPES):
            form = await request.form()
            body: dict[str, Any] = {}
            files: dict[str, Any] = {}
            for key, value in form.multi_items():
                if hasattr(value, "filename") and hasattr(value, "read"):
                    files[key] = value
                else:
                    body[key] = value
            return cls(query=query, request=body, files=files)

        raw = await request.body()
        if not raw:
            return cls(query=query)
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"[dto] ignoring non-JSON body on {request.method} {request.url.path}")
            return cls(query=query)
        if not isinstance(parsed, dict):
            return cls(query=query)
        return cls(query=query, request=parsed)

    def has(self, name: str) -> bool:
        return name in self.query or name in self.request

    def get(self, name: str, default: Any = None) -> Any:
        """Query value if the query string has `name`, else body value, else `default`."""
        if name in self.query:
            return self.query[name]
        return self.request.get(name, default)

    def all(self) -> dict[str, Any]:
        """Body parameters overlaid by query parameters."""
        merged = dict(self.request)
        merged.update(self.query)
        return merged

    def __repr__(self) -> str:
        return f"<RequestDto query={sorted(self.query)} request={sorted(self.request)}>"
