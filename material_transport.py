"""HTTP transport for the material generation backend.

One request per call, JSON or multipart body, raw response bytes back.
Errors never escape: every requests failure is returned as a Failure carrying
the library's diagnostic string. Retrying is left to material_retry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import requests

from material_types import Failure, Outcome, Success

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120


@dataclass(frozen=True)
class JsonBody:
    payload: Dict

    content_type = "application/json"


@dataclass(frozen=True)
class FilePart:
    name: str
    data: bytes = field(repr=False)
    filename: str
    mime: str = "image/png"


@dataclass(frozen=True)
class MultipartBody:
    fields: Dict[str, str]
    files: List[FilePart] = field(default_factory=list)

    content_type = "multipart/form-data"


RequestBody = Union[JsonBody, MultipartBody]


class TransportClient:
    """Sends single requests through a shared requests.Session."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)

    async def send(self, url: str, body: RequestBody) -> Outcome[bytes]:
        """POST *body* to *url*."""
        if isinstance(body, JsonBody):
            kwargs = {"json": body.payload}
        else:
            kwargs = {
                "data": body.fields,
                "files": {
                    part.name: (part.filename, part.data, part.mime)
                    for part in body.files
                },
            }
        return await self._request("POST", url, **kwargs)

    async def get(self, url: str) -> Outcome[bytes]:
        return await self._request("GET", url)

    async def _request(self, method: str, url: str, **kwargs) -> Outcome[bytes]:
        # The worker thread is not interrupted on cancellation; its result is dropped.
        return await asyncio.to_thread(self._request_blocking, method, url, **kwargs)

    def _request_blocking(self, method: str, url: str, **kwargs) -> Outcome[bytes]:
        t0 = time.time()
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as exc:
            log.warning("%s %s failed after %.1fs: %s", method, _short(url), time.time() - t0, exc)
            return Failure(str(exc))

        log.info(
            "%s %s → %d  %d bytes  %.1fs",
            method, _short(url), resp.status_code, len(resp.content), time.time() - t0,
        )
        return Success(resp.content)

    def close(self) -> None:
        self.session.close()


def _short(url: str) -> str:
    # Signed URLs carry credentials in the query string
    return url.split("?", 1)[0]
