"""
Frame Schema (v1)
=================

The service addresses every field by position inside heterogeneous
arrays. All positions live in this module as named index paths; the rest
of the package reads frames only through the accessors below, so an
upstream layout change is fixed here and nowhere else.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Sequence

import orjson

from ..models import Candidate, Gem, Image
from .stream import Frame

logger = logging.getLogger("gemini_web.protocol.schema")

SCHEMA_VERSION = 1

Path = tuple[int, ...]

# Generate frames: [["wrb.fr", null, "<body json>"], ...]
ENTRY_MARKER = "wrb.fr"
ENTRY_BODY = (2,)
ERROR_CODE = (0, 5, 2, 0, 1, 0)

# Generate body
BODY_METADATA = (1,)
BODY_CONVERSATION_ID = (1, 0)
BODY_RESPONSE_ID = (1, 1)
BODY_CANDIDATES = (4,)

# Candidate
CANDIDATE_RESPONSE_ID = (0,)
CANDIDATE_TEXT = (1, 0)
CANDIDATE_CARD_TEXT = (22, 0)
CANDIDATE_THOUGHTS = (37, 0, 0)
CANDIDATE_WEB_IMAGES = (12, 1)
CANDIDATE_GENERATED_IMAGES = (12, 7, 0)

# Web image entry
WEB_IMAGE_URL = (0, 0, 0)
WEB_IMAGE_TITLE = (7, 0)
WEB_IMAGE_ALT = (0, 4)

# Generated image entry
GENERATED_IMAGE_URL = (0, 3, 3)
GENERATED_IMAGE_TITLE = (0, 3, 2)
GENERATED_IMAGE_ALT = (3, 5, 0)

# Placeholder the service puts in the text when the real content is a card.
CARD_CONTENT_PREFIX = "http://googleusercontent.com/card_content/"

# Gem list payload
GEM_LIST = (2,)
GEM_ID = (0,)
GEM_NAME = (1, 0)
GEM_DESCRIPTION = (1, 1)
GEM_PROMPT = (2, 0)

# Create-gem reply payload
CREATED_GEM_ID = (0,)


def get_nested_value(data: Any, path: Sequence[int], default: Any = None) -> Any:
    """Walk ``path`` through nested lists; ``default`` on any miss or ``None``."""
    current = data
    for index in path:
        if not isinstance(current, list) or not -len(current) <= index < len(current):
            return default
        current = current[index]
    return default if current is None else current


@dataclass
class GenerateBody:
    """A decoded generate body, the unit the client reconciles per frame."""

    conversation_id: str | None
    response_id: str | None
    candidates: list[Candidate]

    @property
    def metadata(self) -> dict[str, Any]:
        return {"conversation_id": self.conversation_id, "response_id": self.response_id}


def iter_entry_bodies(frame: Frame) -> list[Any]:
    """Decode the JSON body string of every ``wrb.fr`` entry in a frame."""
    bodies: list[Any] = []
    for entry in frame:
        if not isinstance(entry, list) or not entry or entry[0] != ENTRY_MARKER:
            continue
        raw = get_nested_value(entry, ENTRY_BODY)
        if not isinstance(raw, str):
            continue
        try:
            bodies.append(orjson.loads(raw))
        except orjson.JSONDecodeError:
            logger.debug("Skipping entry with undecodable body: %.80s", raw)
    return bodies


def extract_error_code(frame: Frame) -> int | None:
    code = get_nested_value(frame, ERROR_CODE)
    return code if isinstance(code, int) and not isinstance(code, bool) else None


def _decode_data_uri(uri: str) -> tuple[bytes, str] | None:
    header, _, encoded = uri.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        return None
    try:
        return base64.b64decode(encoded), header[5:].split(";", 1)[0] or "image/png"
    except (binascii.Error, ValueError):
        return None


def parse_images(candidate: Any) -> list[Image]:
    images: list[Image] = []

    for entry in get_nested_value(candidate, CANDIDATE_WEB_IMAGES, []):
        url = get_nested_value(entry, WEB_IMAGE_URL)
        if not isinstance(url, str):
            continue
        images.append(
            Image.remote(
                url,
                title=get_nested_value(entry, WEB_IMAGE_TITLE, ""),
                alt=get_nested_value(entry, WEB_IMAGE_ALT, ""),
            )
        )

    for entry in get_nested_value(candidate, CANDIDATE_GENERATED_IMAGES, []):
        url = get_nested_value(entry, GENERATED_IMAGE_URL)
        if not isinstance(url, str):
            continue
        title = get_nested_value(entry, GENERATED_IMAGE_TITLE, "")
        alt = get_nested_value(entry, GENERATED_IMAGE_ALT, "")
        decoded = _decode_data_uri(url)
        if decoded is not None:
            data, mime_type = decoded
            images.append(Image.inline(data, title=title, alt=alt, mime_type=mime_type))
        else:
            images.append(Image.remote(url, title=title, alt=alt))

    return images


def parse_candidate(raw: Any, index: int, is_final: bool = False) -> Candidate | None:
    response_id = get_nested_value(raw, CANDIDATE_RESPONSE_ID)
    if not response_id:
        return None

    text = get_nested_value(raw, CANDIDATE_TEXT, "")
    if isinstance(text, str) and text.startswith(CARD_CONTENT_PREFIX):
        text = get_nested_value(raw, CANDIDATE_CARD_TEXT) or text

    return Candidate(
        content=text if isinstance(text, str) else "",
        index=index,
        finish_reason="stop" if is_final else None,
        response_id=response_id,
        thoughts=get_nested_value(raw, CANDIDATE_THOUGHTS),
        images=parse_images(raw),
    )


def parse_generate_body(body: Any, is_final: bool = False) -> GenerateBody | None:
    """Read a generate body; ``None`` when it carries no candidate list."""
    raw_candidates = get_nested_value(body, BODY_CANDIDATES)
    if not isinstance(raw_candidates, list):
        return None

    candidates = []
    for raw in raw_candidates:
        candidate = parse_candidate(raw, index=len(candidates), is_final=is_final)
        if candidate is not None:
            candidates.append(candidate)

    return GenerateBody(
        conversation_id=get_nested_value(body, BODY_CONVERSATION_ID),
        response_id=get_nested_value(body, BODY_RESPONSE_ID),
        candidates=candidates,
    )


def find_generate_body(frame: Frame) -> Any | None:
    """Raw body of the first entry in ``frame`` that carries candidates."""
    for body in iter_entry_bodies(frame):
        if get_nested_value(body, BODY_CANDIDATES) is not None:
            return body
    return None


def parse_gem_list(payload: Any, predefined: bool) -> list[Gem]:
    gems = []
    for entry in get_nested_value(payload, GEM_LIST, []):
        gem_id = get_nested_value(entry, GEM_ID)
        if not gem_id:
            continue
        gems.append(
            Gem(
                id=gem_id,
                name=get_nested_value(entry, GEM_NAME, ""),
                description=get_nested_value(entry, GEM_DESCRIPTION, ""),
                prompt=get_nested_value(entry, GEM_PROMPT, ""),
                is_predefined=predefined,
            )
        )
    return gems


def parse_created_gem_id(payload: Any) -> str | None:
    gem_id = get_nested_value(payload, CREATED_GEM_ID)
    return gem_id if isinstance(gem_id, str) and gem_id else None


__all__ = [
    "SCHEMA_VERSION",
    "GenerateBody",
    "get_nested_value",
    "iter_entry_bodies",
    "extract_error_code",
    "parse_images",
    "parse_candidate",
    "parse_generate_body",
    "find_generate_body",
    "parse_gem_list",
    "parse_created_gem_id",
]
