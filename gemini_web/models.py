"""
Data models for gemini-web
==========================

- Image: tagged union over a remote reference or inline bytes
- Candidate / ModelOutput: one turn's reply
- Gem / GemJar: system-prompt presets
- ChatSessionMetadata: conversation continuation identifiers
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from curl_cffi.requests import AsyncSession

from .core.exceptions import api_error
from .protocol.envelope import RpcCall, RpcResult

logger = logging.getLogger("gemini_web.models")

_VALID_FILENAME = re.compile(r"^[\w\-. ]+$")


class ImageKind(Enum):
    REMOTE = "remote"
    INLINE = "inline"


@dataclass(frozen=True)
class Image:
    """
    An image attached to a reply.

    ``REMOTE`` images point at a URL (web search results, hosted
    generations); ``INLINE`` images carry their decoded bytes.
    """

    kind: ImageKind
    url: str | None = None
    data: bytes | None = field(default=None, repr=False)
    title: str = ""
    alt: str = ""
    mime_type: str = "image/png"

    @classmethod
    def remote(cls, url: str, title: str = "", alt: str = "") -> "Image":
        return cls(kind=ImageKind.REMOTE, url=url, title=title, alt=alt)

    @classmethod
    def inline(
        cls, data: bytes, title: str = "", alt: str = "", mime_type: str = "image/png"
    ) -> "Image":
        return cls(kind=ImageKind.INLINE, data=data, title=title, alt=alt, mime_type=mime_type)

    def default_filename(self) -> str:
        if self.kind is ImageKind.REMOTE and self.url:
            name = self.url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
            if name:
                return name
        ext = self.mime_type.rsplit("/", 1)[-1] or "png"
        return f"generated_{datetime.now():%Y%m%d_%H%M%S}.{ext}"

    async def save(
        self,
        path: str | Path = "./",
        filename: str | None = None,
        cookies: dict[str, str] | None = None,
        proxy: str | None = None,
        skip_invalid_filename: bool = True,
    ) -> Path | None:
        """
        Write the image to ``path/filename``.

        Remote images are downloaded first (``cookies`` are needed for
        generated images hosted by the service). Returns the written path,
        or ``None`` when the filename is invalid and
        ``skip_invalid_filename`` is set.
        """
        filename = filename or self.default_filename()
        if not _VALID_FILENAME.match(filename):
            if skip_invalid_filename:
                logger.debug("Skipping image with invalid filename: %s", filename)
                return None
            raise ValueError(f"Invalid filename: {filename}")

        if self.kind is ImageKind.INLINE:
            if self.data is None:
                raise ValueError("Inline image has no data")
            content = self.data
        else:
            if not self.url:
                raise ValueError("Remote image has no URL")
            async with AsyncSession(impersonate="chrome", proxy=proxy) as session:
                response = await session.get(self.url, cookies=cookies or {})
            if response.status_code != 200:
                raise api_error(
                    f"Failed to download image {self.url}",
                    status_code=response.status_code,
                )
            content = response.content

        target_dir = Path(path)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / filename
        target.write_bytes(content)
        logger.debug("Image saved as %s", target)
        return target


@dataclass
class Candidate:
    """One of the alternative completions of a turn."""

    content: str
    index: int
    finish_reason: str | None = None
    response_id: str | None = None
    thoughts: str | None = None
    images: list[Image] = field(default_factory=list)

    def __str__(self) -> str:
        return self.content


@dataclass
class ModelOutput:
    """
    Output of a generate call.

    While streaming, each instance carries the current snapshot in
    ``text``/``thoughts`` and the increment in ``text_delta`` /
    ``thoughts_delta``. The non-streaming call returns the terminal one.
    """

    text: str = ""
    text_delta: str = ""
    thoughts: str = ""
    thoughts_delta: str = ""
    images: list[Image] = field(default_factory=list)
    candidates: list[Candidate] = field(default_factory=list)
    metadata: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Gem:
    """A named system-prompt preset."""

    id: str
    name: str
    prompt: str = ""
    description: str = ""
    is_predefined: bool = False

    def __str__(self) -> str:
        return self.name


class GemJar(list):
    """Ordered collection of gems with lookup and filtering."""

    def __init__(self, gems: Iterable[Gem] = ()):
        super().__init__(gems)

    def get(self, id: str | None = None, name: str | None = None) -> Gem | None:
        """First gem matching ``id`` (checked first) or ``name``."""
        if id:
            return next((g for g in self if g.id == id), None)
        if name:
            return next((g for g in self if g.name == name), None)
        return None

    def filter(self, predefined: bool | None = None, name: str | None = None) -> "GemJar":
        return GemJar(
            g
            for g in self
            if (predefined is None or g.is_predefined == predefined)
            and (name is None or g.name == name)
        )


@dataclass(frozen=True)
class ChatSessionMetadata:
    """Continuation identifiers of a conversation."""

    conversation_id: str | None = None
    response_id: str | None = None
    chosen_index: int = 0

    def __str__(self) -> str:
        return f"CID: {self.conversation_id}"


__all__ = [
    "ImageKind",
    "Image",
    "Candidate",
    "ModelOutput",
    "Gem",
    "GemJar",
    "ChatSessionMetadata",
    "RpcCall",
    "RpcResult",
]
