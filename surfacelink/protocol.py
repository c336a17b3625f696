"""Wire format for the virtual surface websocket.

Every text frame is one JSON object:

  Client → Server:
    {"command": "version",          "arguments": {"version": 2}}
    {"command": "new_device",       "arguments": {"id": "..."}}   (or a bare id string)
    {"command": "get_instances",    "arguments": {}}               (v1)
    {"command": "request_button",   "arguments": {"page": 1, "bank": 3}}   (v2)
    {"command": "unrequest_button", "arguments": {"page": 1, "bank": 3}}   (v2)
    {"command": "keydown" | "keyup", "arguments": {"keyIndex": 4} | {"page": 1, "bank": 3}}

  Server → Client:
    {"response": <command>, "arguments": {...}}   reply to a command
    {"command": "fillImage", "arguments": {...}}  unsolicited push
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

MAX_PROTOCOL_VERSION = 2


class Frame(BaseModel):
    command: str
    arguments: Any = None


class ButtonArgs(BaseModel):
    page: int
    bank: int


class KeyArgs(BaseModel):
    keyIndex: int | None = None
    page: int | None = None
    bank: int | None = None


def parse_frame(text: str | bytes) -> Frame | None:
    """Parse one inbound frame, or return None if it is not well-formed."""
    try:
        return Frame.model_validate_json(text)
    except ValidationError as e:
        logger.debug("protocol error: %s", e)
        return None


def parse_args(model: type[BaseModel], arguments: Any) -> Any:
    """Validate a frame's arguments against *model*, or return None."""
    if not isinstance(arguments, dict):
        return None
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        logger.debug("bad arguments for %s: %s", model.__name__, e)
        return None


def requested_version(arguments: Any) -> Any:
    if isinstance(arguments, dict):
        return arguments.get("version")
    return None


def device_id_argument(arguments: Any) -> str | None:
    """The id a client sent with ``new_device`` (dict or bare string form)."""
    if isinstance(arguments, str):
        return arguments
    if isinstance(arguments, dict) and arguments.get("id") is not None:
        return str(arguments["id"])
    return None


def response(command: str, arguments: dict[str, Any]) -> dict[str, Any]:
    return {"response": command, "arguments": arguments}


def command(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    return {"command": name, "arguments": arguments}


def encode_buffer(data: bytes) -> dict[str, Any]:
    """JSON form of a byte buffer as plugin clients expect it."""
    return {"type": "Buffer", "data": list(data)}
