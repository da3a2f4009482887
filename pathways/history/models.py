"""
Data structures for persisted conversation history.

- Role: the four message roles a conversation can hold
- MessageUser: identity of the human author of a message
- ToolCallRequest: a tool call requested by a model (also the task handed
  to the ToolRunner)
- ToolCalled: which tool produced a tool-role message, and with what arguments
- Message: the atomic persisted unit

Messages are written as camelCase JSON so that records stay readable by
other clients of the same key space. Decoding a stored record never raises:
anything missing or malformed falls back to a default value.
"""

import json
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from pathways.config.logging import get_logger
from pathways.errors import MalformedStoredMessage

logger = get_logger(__name__)

EMPTY_CONTENT = "[empty]"
UNKNOWN = "unknown"


def new_id() -> str:
    """Generate a fresh opaque identifier."""
    return uuid.uuid4().hex


def utc_now() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not ISO-8601
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class Role(str, Enum):
    """Message roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"

    @classmethod
    def coerce(cls, value: Any) -> "Role":
        """Map a stored role value to a Role; anything unrecognized becomes USER."""
        try:
            return cls(value)
        except ValueError:
            return cls.USER


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class MessageUser(_Record):
    """Identity of the human who wrote a message."""

    id: str = "0"
    name: str = UNKNOWN
    display_name: str | None = None
    pronouns: str = UNKNOWN

    @model_validator(mode="before")
    @classmethod
    def _default_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            display_name = data.pop("display_name", None)
            if data.get("displayName") is None:
                data["displayName"] = display_name if display_name is not None else data.get("name", UNKNOWN)
        return data


class ToolCallRequest(_Record):
    """A tool invocation requested by a model."""

    name: str
    id: str = Field(default_factory=new_id)
    type: Literal["tool_call", "function"] = "tool_call"
    args: dict[str, Any] = Field(default_factory=dict)


class ToolCalled(_Record):
    """The tool (and arguments) that produced a tool-role message."""

    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class Message(_Record):
    """
    A single persisted message.

    The conversation a message belongs to is not a field: it is encoded in
    the storage key. Messages are frozen; corrections are new messages.

    Example:
        >>> msg = Message(role=Role.USER, content="What's 2+2?")
        >>> msg.role
        <Role.USER: 'user'>
    """

    id: str = Field(default_factory=new_id)
    role: Role
    timestamp: str = Field(default_factory=utc_now)
    content: str
    user: MessageUser = Field(default_factory=MessageUser)
    tools: list[ToolCallRequest] | None = None
    tool_called: ToolCalled | None = None

    @field_validator("timestamp")
    @classmethod
    def _check_timestamp(cls, value: str) -> str:
        parse_timestamp(value)
        return value

    @property
    def sort_key(self) -> datetime:
        """Timestamp as an aware datetime, for ordering."""
        return parse_timestamp(self.timestamp)

    def to_record(self) -> bytes:
        """Serialize for the key/value store."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps(data).encode("utf-8")

    @classmethod
    def from_record(cls, raw: bytes | str) -> "Message":
        """
        Decode a stored record, defaulting every missing or malformed field.

        Defaults: role "user", id "0", timestamp now, content "[empty]",
        user id "0", name/pronouns "unknown", display name = name.
        """
        try:
            data = _load_record(raw)
        except MalformedStoredMessage as e:
            logger.warning(f"Stored message could not be decoded, using defaults: {e}")
            data = {}

        return cls(
            role=Role.coerce(data.get("role")),
            id=_text(data.get("id")) or "0",
            timestamp=_timestamp(data.get("timestamp")),
            content=_text(data.get("content")) or EMPTY_CONTENT,
            user=_user(data.get("user")),
            tools=_tools(data.get("tools")),
            tool_called=_tool_called(data.get("toolCalled", data.get("tool_called"))),
        )


def _load_record(raw: bytes | str) -> dict[str, Any]:
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedStoredMessage(f"Invalid JSON record: {e}", cause=e) from e
    if not isinstance(data, dict):
        raise MalformedStoredMessage(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _timestamp(value: Any) -> str:
    if isinstance(value, str) and value:
        try:
            parse_timestamp(value)
            return value
        except ValueError:
            pass
    return utc_now()


def _user(value: Any) -> MessageUser:
    if not isinstance(value, dict):
        return MessageUser()
    name = _text(value.get("name")) or UNKNOWN
    display_name = value.get("displayName", value.get("display_name"))
    return MessageUser(
        id=_text(value.get("id")) or "0",
        name=name,
        display_name=_text(display_name) or name,
        pronouns=_text(value.get("pronouns")) or UNKNOWN,
    )


def _tools(value: Any) -> list[ToolCallRequest] | None:
    if not isinstance(value, list):
        return None
    try:
        return [ToolCallRequest.model_validate(item) for item in value]
    except ValidationError:
        logger.warning("Dropping malformed tool calls on stored message")
        return None


def _tool_called(value: Any) -> ToolCalled | None:
    if not isinstance(value, dict):
        return None
    try:
        return ToolCalled.model_validate(value)
    except ValidationError:
        logger.warning("Dropping malformed toolCalled on stored message")
        return None
