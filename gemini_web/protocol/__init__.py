"""
Wire protocol for gemini.google.com
===================================

- constants: endpoints, RPC ids, headers, models, upstream error codes
- envelope: batchexecute ``f.req``/``at`` encoding and result unwrapping
- stream: incremental length-prefixed frame decoder
- delta: snapshot-to-delta reconciliation
- schema: named accessors over the positional frame layout

``schema`` builds model objects and is imported explicitly
(``from gemini_web.protocol import schema``).
"""

from .constants import Endpoint, ErrorCode, Model, RpcId
from .delta import DeltaReconciler, clean_text, get_delta_by_text
from .envelope import RpcCall, RpcResult, decode_batch, encode_batch, strip_xssi
from .stream import FrameDecoder, decode_frames, iter_frames

__all__ = [
    "Endpoint",
    "ErrorCode",
    "Model",
    "RpcId",
    "DeltaReconciler",
    "clean_text",
    "get_delta_by_text",
    "RpcCall",
    "RpcResult",
    "decode_batch",
    "encode_batch",
    "strip_xssi",
    "FrameDecoder",
    "decode_frames",
    "iter_frames",
]
