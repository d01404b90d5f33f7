from __future__ import annotations

import json
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from src.reminders.models import ReminderKind


class TabOpenParams(BaseModel):
    reference_id: str
    notification_permission: Literal["granted", "denied", "default"] = "default"

    @field_validator("reference_id")
    @classmethod
    def _require_reference_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reference_id must not be empty")
        return v


class DismissParams(BaseModel):
    track: ReminderKind


class RPCRequest(BaseModel):
    """Generic RPC request. method determines which params to expect."""

    type: Literal["request"] = "request"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class RPCResponse(BaseModel):
    type: Literal["response"] = "response"
    id: str
    data: dict[str, Any] = Field(default_factory=dict)


class RPCEvent(BaseModel):
    """Server-initiated presentation frame (toast.show, sound.play, ...)."""

    type: Literal["event"] = "event"
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class RPCErrorData(BaseModel):
    code: str
    message: str


class RPCError(BaseModel):
    type: Literal["error"] = "error"
    id: str
    error: RPCErrorData


def parse_rpc_request(raw: str) -> RPCRequest:
    """Parse a raw JSON string into an RPCRequest.

    Raises GatewayError(code="PARSE_ERROR") on invalid JSON or schema mismatch.
    """
    from src.infra.errors import GatewayError

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise GatewayError(f"Invalid JSON: {e}", code="PARSE_ERROR") from e
    try:
        return RPCRequest.model_validate(data)
    except Exception as e:
        raise GatewayError(f"Invalid RPC request: {e}", code="PARSE_ERROR") from e
