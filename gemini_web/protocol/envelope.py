"""
batchexecute Envelope
=====================

Pure functions, no I/O. Encodes a batch of ``RpcCall`` into the
form body the service expects and unwraps the ``wrb.fr`` result
entries from a decoded response. Payload semantics are left to the
callers (see ``schema.py``).

Request body::

    f.req=<url-encoded [[rpc_id, payload_json, null, 1], ...]>&at=<url-encoded token>

Response entry::

    ["wrb.fr", rpc_id, payload_json, null, null, null, identifier]
"""

import urllib.parse
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import orjson

from ..core.exceptions import api_error
from .constants import RPC_REQUEST_TYPE, XSSI_PREFIX
from .stream import Frame, decode_frames

RESULT_MARKER = "wrb.fr"
# Position of the caller-supplied identifier inside a result entry.
RESULT_IDENTIFIER_INDEX = 6


@dataclass(frozen=True)
class RpcCall:
    """One RPC inside a batchexecute request."""

    rpc_id: str
    payload: str
    identifier: str | None = None

    @classmethod
    def build(cls, rpc_id: str, payload: Any, identifier: str | None = None) -> "RpcCall":
        """Build a call from a Python payload, JSON-encoding it."""
        return cls(rpc_id=rpc_id, payload=dumps(payload), identifier=identifier)

    def serialize(self) -> list[Any]:
        return [self.rpc_id, self.payload, None, RPC_REQUEST_TYPE]


@dataclass(frozen=True)
class RpcResult:
    """One ``wrb.fr`` entry of a batchexecute response."""

    rpc_id: str
    payload: str | None
    identifier: str | None = None

    def json(self) -> Any:
        """Decode the payload; ``None`` when the server sent no payload."""
        if self.payload is None:
            return None
        try:
            return orjson.loads(self.payload)
        except orjson.JSONDecodeError as e:
            raise api_error(
                f"RPC {self.rpc_id} returned a payload that is not JSON",
                response_body=self.payload,
                cause=e,
            ) from e


def dumps(value: Any) -> str:
    """Compact JSON, as the browser sends it."""
    return orjson.dumps(value).decode()


def quote(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def encode_batch(calls: Sequence[RpcCall], token: str | None) -> str:
    """
    Encode a batch of calls into a form body.

    All calls share a single ``f.req`` field as a top-level array of call
    tuples.
    """
    if not calls:
        raise ValueError("encode_batch() needs at least one RpcCall")
    f_req = dumps([call.serialize() for call in calls])
    return f"f.req={quote(f_req)}&at={quote(token or '')}"


def strip_xssi(body: str) -> str:
    """Remove the anti-XSSI prefix line, or fail on a malformed envelope."""
    stripped = body.lstrip()
    if not stripped.startswith(XSSI_PREFIX):
        raise api_error(
            "Malformed response envelope: missing anti-XSSI prefix",
            response_body=body,
        )
    return stripped[len(XSSI_PREFIX) :].lstrip("\r\n")


def extract_results(frames: Iterable[Frame]) -> list[RpcResult]:
    """Collect every ``wrb.fr`` entry across frames, in arrival order."""
    results: list[RpcResult] = []
    for frame in frames:
        for entry in frame:
            if not isinstance(entry, list) or len(entry) < 3 or entry[0] != RESULT_MARKER:
                continue
            payload = entry[2] if isinstance(entry[2], str) else None
            identifier = None
            if len(entry) > RESULT_IDENTIFIER_INDEX and isinstance(
                entry[RESULT_IDENTIFIER_INDEX], str
            ):
                identifier = entry[RESULT_IDENTIFIER_INDEX]
            results.append(RpcResult(rpc_id=entry[1], payload=payload, identifier=identifier))
    return results


def decode_batch(body: str | bytes) -> list[RpcResult]:
    """Decode a full batchexecute response body into its results."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return extract_results(decode_frames(strip_xssi(body), require_prefix=False))


def match_results(
    calls: Sequence[RpcCall], results: Sequence[RpcResult]
) -> list[RpcResult | None]:
    """
    Pair each call with its result.

    Results whose echoed identifier equals a call's identifier are matched
    first. The remaining calls take the remaining results for the same rpc
    id in arrival order, whatever identifier the server put on them (it
    may echo its own tag, e.g. ``"generic"``).
    """
    remaining = list(results)
    matched: list[RpcResult | None] = [None] * len(calls)

    for i, call in enumerate(calls):
        if call.identifier is None:
            continue
        for result in remaining:
            if result.rpc_id == call.rpc_id and result.identifier == call.identifier:
                matched[i] = result
                remaining.remove(result)
                break

    for i, call in enumerate(calls):
        if matched[i] is not None:
            continue
        for result in remaining:
            if result.rpc_id == call.rpc_id:
                matched[i] = result
                remaining.remove(result)
                break
    return matched


__all__ = [
    "RpcCall",
    "RpcResult",
    "dumps",
    "encode_batch",
    "strip_xssi",
    "extract_results",
    "decode_batch",
    "match_results",
]
