"""
Wire constants for gemini.google.com
====================================

Endpoints, RPC ids, request headers, the model table and upstream error
codes. Everything here is part of the upstream wire contract.
"""

from enum import Enum, IntEnum
from typing import Any


class Endpoint:
    GOOGLE = "https://www.google.com"
    INIT = "https://gemini.google.com/app"
    GENERATE = (
        "https://gemini.google.com/_/BardChatUi/data/"
        "assistant.lamda.BardFrontendService/StreamGenerate"
    )
    ROTATE_COOKIES = "https://accounts.google.com/RotateCookies"
    UPLOAD = "https://content-push.googleapis.com/upload"
    BATCH_EXEC = "https://gemini.google.com/_/BardChatUi/data/batchexecute"


class RpcId:
    """batchexecute RPC identifiers."""

    # Chats
    LIST_CHATS = "MaZiqc"
    READ_CHAT = "hNvQHb"
    DELETE_CHAT = "GzXR5e"

    # Gems
    LIST_GEMS = "CNgdBe"
    CREATE_GEM = "oMH3Zd"
    UPDATE_GEM = "kHv0Vd"
    DELETE_GEM = "UXcSJb"

    # Activity
    BARD_ACTIVITY = "ESY5D"


# Fourth element of every batchexecute call tuple.
RPC_REQUEST_TYPE = 1

COOKIE_DOMAIN = ".google.com"
PSID_COOKIE = "__Secure-1PSID"
PSIDTS_COOKIE = "__Secure-1PSIDTS"

XSSI_PREFIX = ")]}'"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36"
)

GEMINI_HEADERS: dict[str, str] = {
    "Content-Type": "application/x-www-form-urlencoded;charset=utf-8",
    "Host": "gemini.google.com",
    "Origin": "https://gemini.google.com",
    "Referer": "https://gemini.google.com/",
    "User-Agent": USER_AGENT,
    "X-Same-Domain": "1",
}

ROTATE_COOKIES_HEADERS: dict[str, str] = {"Content-Type": "application/json"}

# Body the browser sends to RotateCookies.
ROTATE_COOKIES_BODY = '[000,"-0000000000000000000"]'

UPLOAD_HEADERS: dict[str, str] = {"Push-ID": "feeds/mcudyrk2a4khkz"}

MODEL_HEADER_KEY = "x-goog-ext-525001261-jspb"


def _model_header(model_id: str) -> dict[str, str]:
    return {MODEL_HEADER_KEY: f'[1,null,null,null,"{model_id}",null,null,0,[4],null,null,1]'}


class Model(Enum):
    """Selectable models: (model name, extra request headers)."""

    UNSPECIFIED = ("unspecified", {})
    G_3_0_PRO = ("gemini-3.0-pro", _model_header("9d8ca3786ebdfbea"))
    G_3_0_FLASH = ("gemini-3.0-flash", _model_header("fbb127bbb056c959"))
    G_3_0_FLASH_THINKING = ("gemini-3.0-flash-thinking", _model_header("5bf011840784117a"))

    def __init__(self, name: str, header: dict[str, str]):
        self.model_name = name
        self.model_header = header

    @classmethod
    def from_name(cls, name: str) -> "Model":
        for model in cls:
            if model.model_name == name:
                return model
        raise ValueError(
            f"Unknown model name: {name}. Available models: {', '.join(m.model_name for m in cls)}"
        )

    @classmethod
    def resolve(cls, model: Any) -> "Model":
        if isinstance(model, Model):
            return model
        if isinstance(model, str):
            return cls.from_name(model)
        raise TypeError(f"'model' must be a Model or a model name string; got {type(model).__name__}")


class ErrorCode(IntEnum):
    """Error codes the service embeds inside response frames."""

    TEMPORARY_ERROR_1013 = 1013  # Randomly raised when generating with certain models
    USAGE_LIMIT_EXCEEDED = 1037
    MODEL_INCONSISTENT = 1050
    MODEL_HEADER_INVALID = 1052
    IP_TEMPORARILY_BLOCKED = 1060
