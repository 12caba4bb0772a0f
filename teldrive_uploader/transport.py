"""Thin JSON-over-HTTP client on top of ``requests``.

Nothing here retries; the pacer decides what is worth repeating.
"""

import json
from typing import Any, BinaryIO, Dict, Optional, Tuple, Union

import requests

Body = Union[bytes, BinaryIO, None]


class ApiError(requests.HTTPError):
    """Non-2xx response. ``status_code`` and the raw ``body`` are kept."""

    def __init__(self, response: requests.Response) -> None:
        self.status_code = response.status_code
        self.body = response.text
        super().__init__(
            f"HTTP error {response.status_code} ({response.reason}) "
            f"returned body: {self.body[:512]!r}",
            response=response,
        )


class RestClient:
    def __init__(
        self,
        root_url: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.root_url = root_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers: Dict[str, str] = {}

    def set_header(self, key: str, value: str) -> "RestClient":
        self.headers[key] = value
        return self

    def set_cookie(self, name: str, value: str) -> "RestClient":
        self.session.cookies.set(name, value)
        return self

    def url(self, path: str) -> str:
        return f"{self.root_url}/{path.lstrip('/')}"

    def call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Body = None,
        content_type: Optional[str] = None,
        content_length: Optional[int] = None,
    ) -> requests.Response:
        headers = dict(self.headers)
        if content_type:
            headers["Content-Type"] = content_type
        if content_length is not None:
            headers["Content-Length"] = str(content_length)

        resp = self.session.request(
            method,
            self.url(path),
            params=params,
            data=body,
            headers=headers,
            timeout=self.timeout,
        )
        if not 200 <= resp.status_code <= 299:
            raise ApiError(resp)
        return resp

    def call_json(
        self,
        method: str,
        path: str,
        request: Any = None,
        params: Optional[Dict[str, Any]] = None,
        body: Body = None,
        content_type: Optional[str] = None,
        content_length: Optional[int] = None,
    ) -> Tuple[requests.Response, Any]:
        """Like :meth:`call`, encoding *request* as JSON and decoding the reply.

        The decoded value is ``None`` for an empty response body.
        """
        if request is not None:
            body = json.dumps(request).encode("utf-8")
            content_type = "application/json"
            content_length = None

        resp = self.call(
            method,
            path,
            params=params,
            body=body,
            content_type=content_type,
            content_length=content_length,
        )
        if not resp.content:
            return resp, None
        return resp, resp.json()
