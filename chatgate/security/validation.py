"""Request body validation for the chat endpoint.

Length limits bound upstream cost; unknown fields are rejected outright.
"""

import re
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

# Control characters except \t, \n and \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_text(value: str) -> str:
    """Strip control characters (keeping newlines and tabs) and trim."""
    return _CONTROL_CHARS.sub("", value).strip()


MessageContent = Annotated[
    str,
    Field(min_length=1, max_length=32000),
    AfterValidator(sanitize_text),
]


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["user", "assistant", "system"]
    content: MessageContent


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    messages: list[ChatMessage] = Field(min_length=1, max_length=50)
    stream: bool = False


def validation_details(error: ValidationError) -> list[dict]:
    """Flatten pydantic errors into ``{"path", "message"}`` pairs."""
    return [
        {"path": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in error.errors()
    ]
