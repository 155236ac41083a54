from __future__ import annotations

import uuid
from dataclasses import dataclass

PREVIEW_URL_PREFIX = "/previews/"


@dataclass(frozen=True)
class PreviewBlob:
    data: bytes
    mime_type: str


class PreviewUrlRegistry:
    """Short-lived display URLs for images that are not uploaded yet.

    Every URL handed out by ``create`` holds its bytes in memory until ``revoke``
    is called; ``active_count`` exposes how many are still held.
    """

    def __init__(self) -> None:
        self._blobs: dict[str, PreviewBlob] = {}

    def create(self, data: bytes, mime_type: str) -> str:
        token = uuid.uuid4().hex
        self._blobs[token] = PreviewBlob(data=data, mime_type=mime_type)
        return f"{PREVIEW_URL_PREFIX}{token}"

    def resolve(self, url_or_token: str) -> PreviewBlob | None:
        return self._blobs.get(self._token(url_or_token))

    def revoke(self, url_or_token: str) -> None:
        self._blobs.pop(self._token(url_or_token), None)

    @property
    def active_count(self) -> int:
        return len(self._blobs)

    @staticmethod
    def _token(url_or_token: str) -> str:
        if url_or_token.startswith(PREVIEW_URL_PREFIX):
            return url_or_token[len(PREVIEW_URL_PREFIX):]
        return url_or_token
