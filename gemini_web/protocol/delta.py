"""
Delta Reconciliation
====================

The generate endpoint re-sends the whole text-so-far in every frame.
These helpers turn successive snapshots into the increments a streaming
caller prints.
"""

import re

# Escaped markdown marker still being completed by the server, e.g. "foo \*\*".
_TRAILING_MARKER = re.compile(r"\\+[`*_~].*$")


def clean_text(text: str) -> str:
    """Strip a trailing escaped-markdown artifact from a non-final snapshot."""
    if not text:
        return text
    return _TRAILING_MARKER.sub("", text)


def common_prefix_length(a: str, b: str) -> int:
    limit = min(len(a), len(b))
    i = 0
    while i < limit and a[i] == b[i]:
        i += 1
    return i


def get_delta_by_text(new_raw: str, last_sent: str, is_final: bool) -> tuple[str, str]:
    """
    Compute the delta between the last emitted snapshot and a new one.

    Returns:
        ``(delta, new_clean)`` where ``last_sent[:c] + delta == new_clean``
        and ``c`` is the common prefix length (``len(last_sent)`` when the
        snapshot simply grew).
    """
    new_clean = new_raw if is_final else clean_text(new_raw)

    if new_clean.startswith(last_sent):
        return new_clean[len(last_sent) :], new_clean

    # The server revised earlier text; resume from the first difference.
    return new_clean[common_prefix_length(last_sent, new_clean) :], new_clean


class DeltaReconciler:
    """Tracks the last emitted snapshot of one text field."""

    __slots__ = ("last_sent",)

    def __init__(self, last_sent: str = ""):
        self.last_sent = last_sent

    def update(self, new_raw: str | None, is_final: bool = False) -> str:
        """Feed a snapshot, return the delta to emit (may be empty)."""
        delta, self.last_sent = get_delta_by_text(new_raw or "", self.last_sent, is_final)
        return delta


__all__ = ["clean_text", "common_prefix_length", "get_delta_by_text", "DeltaReconciler"]
