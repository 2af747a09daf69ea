"""Data models for the ACN gateway."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class CommandResult(BaseModel):
    """Outcome of a device command."""

    command: str = Field(..., description="Symbolic command name")
    code: int = Field(..., ge=0, description="Command code sent to the device")
    values: list[int] = Field(default_factory=list, description="Raw response bytes")

    def text(self) -> str:
        """Response bytes interpreted as ASCII (debug/diagnostic commands)."""
        return bytes(self.values).decode("ascii", errors="replace")


class RegisterInfo(BaseModel):
    """Static description of a register map item."""

    name: str
    title: str
    kind: str
    address: int
    length: int
    writable: bool
    units: str | None = None


class RegisterValueResponse(BaseModel):
    """Formatted value of a register after a read or write."""

    name: str
    title: str
    value: Any


class RegisterWriteRequest(BaseModel):
    """Request body for writing a register."""

    value: Any = Field(..., description="Host-facing value, as returned by a read")

    model_config = ConfigDict(json_schema_extra={"example": {"value": [True, False, False, False]}})


class CommandRequest(BaseModel):
    """Request body for a raw device command."""

    payload: list[int] = Field(default_factory=list, description="Command payload bytes")


class ScanRequest(BaseModel):
    """Request body for a network scan."""

    type: Literal["noise", "active", "both"] = "noise"
    duration: int | None = Field(None, ge=1, le=255, description="Scan duration in seconds")


class PingRequest(BaseModel):
    """Request body for pinging a remote station."""

    address: str | int = Field(..., description="Short address (int or hex string)")


class StatusResponse(BaseModel):
    """Last known device status, as cached by the poller."""

    connected: bool
    last_update: datetime | None
    status: dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded", "unhealthy"]
    device_connected: bool
    connection_state: str
    last_update: datetime | None


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
