"""
Length-Prefixed Frame Decoder
=============================

The service answers generate and batchexecute calls with the same body
grammar:

    )]}'
    <decimal length>
    <json array>
    <decimal length>
    <json array>
    ...

``FrameDecoder`` parses that grammar incrementally as transport chunks
arrive. A malformed pair is dropped and decoding resumes on the next
line; it never aborts the stream.

Usage:
    decoder = FrameDecoder()
    async for frame in iter_frames(response.aiter_content()):
        ...
"""

import codecs
import logging
from typing import Any, AsyncIterable, AsyncIterator, Iterable

import orjson

from ..core.exceptions import api_error
from .constants import XSSI_PREFIX

logger = logging.getLogger("gemini_web.protocol.stream")

Frame = list[Any]


class FrameDecoder:
    """
    Incremental, single-pass decoder for the length-prefixed frame stream.

    The length line only marks the start of a frame; the payload is the
    following line. The upstream length counts characters of the
    serialized array, which differs from the UTF-8 byte count as soon as
    the text is not ASCII, so it is not used to slice the payload.

    Attributes:
        require_prefix: Raise an API error if the body does not start
            with the anti-XSSI prefix line
    """

    def __init__(self, require_prefix: bool = True):
        self.require_prefix = require_prefix
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._seen_first_line = False
        self._expected_length: int | None = None
        self.frames_decoded = 0
        self.pairs_skipped = 0

    def feed(self, data: bytes | str) -> list[Frame]:
        """Consume a transport chunk and return the frames it completed."""
        if isinstance(data, bytes):
            data = self._utf8.decode(data)
        self._buffer += data

        frames: list[Frame] = []
        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            frame = self._consume_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[Frame]:
        """Signal end of body; decode any trailing line without a newline."""
        self._buffer += self._utf8.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""

        frames: list[Frame] = []
        if tail:
            frame = self._consume_line(tail)
            if frame is not None:
                frames.append(frame)
        if self._expected_length is not None:
            logger.debug("Body ended after a length line without its frame")
            self._expected_length = None
            self.pairs_skipped += 1
        if not self._seen_first_line and self.require_prefix:
            raise api_error("Empty response body: missing anti-XSSI prefix")
        return frames

    def _consume_line(self, raw: str) -> Frame | None:
        line = raw.strip()
        if not line:
            return None

        if not self._seen_first_line:
            self._seen_first_line = True
            if line == XSSI_PREFIX:
                return None
            if self.require_prefix:
                raise api_error(
                    "Malformed response envelope: missing anti-XSSI prefix",
                    response_body=line,
                )

        if self._expected_length is None:
            try:
                self._expected_length = int(line)
            except ValueError:
                logger.debug("Skipping non-numeric length line: %.80s", line)
                self.pairs_skipped += 1
            return None

        if line.isdigit():
            # A second length line: the previous pair lost its payload.
            logger.debug("Length line without payload, resyncing")
            self.pairs_skipped += 1
            self._expected_length = int(line)
            return None

        self._expected_length = None
        try:
            frame = orjson.loads(line)
        except orjson.JSONDecodeError:
            logger.debug("Skipping frame that is not valid JSON: %.80s", line)
            self.pairs_skipped += 1
            return None

        if not isinstance(frame, list):
            logger.debug("Skipping frame that is not a JSON array: %.80s", line)
            self.pairs_skipped += 1
            return None

        self.frames_decoded += 1
        return frame


async def iter_frames(
    chunks: AsyncIterable[bytes],
    decoder: FrameDecoder | None = None,
) -> AsyncIterator[Frame]:
    """
    Pull frames out of an async byte stream as the transport delivers it.

    Closing this generator (``break``, ``aclose()`` or task cancellation)
    stops pulling from ``chunks``; frames already yielded stay valid.
    """
    decoder = decoder or FrameDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
    for frame in decoder.flush():
        yield frame


def decode_frames(body: str | bytes | Iterable[bytes], require_prefix: bool = True) -> list[Frame]:
    """Decode a whole response body (or an iterable of chunks) into frames."""
    decoder = FrameDecoder(require_prefix=require_prefix)
    frames: list[Frame] = []
    if isinstance(body, (str, bytes)):
        frames.extend(decoder.feed(body))
    else:
        for chunk in body:
            frames.extend(decoder.feed(chunk))
    frames.extend(decoder.flush())
    return frames


__all__ = ["Frame", "FrameDecoder", "iter_frames", "decode_frames"]
