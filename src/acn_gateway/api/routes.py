"""API route handlers."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from acn_gateway.api.dependencies import get_cache, get_handler
from acn_gateway.core.cache import StatusCache
from acn_gateway.core.errors import (
    AcnError,
    CommandRejectedError,
    DataIntegrityError,
    DeviceExceptionError,
    TransportError,
    ValidationError,
)
from acn_gateway.core.models import (
    CommandRequest,
    CommandResult,
    ErrorResponse,
    PingRequest,
    RegisterInfo,
    RegisterValueResponse,
    RegisterWriteRequest,
    ScanRequest,
    StatusResponse,
)
from acn_gateway.protocol.handler import DeviceHandler

router = APIRouter(prefix="/api")

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _require_connection(handler: DeviceHandler) -> None:
    if not handler.connected:
        raise HTTPException(status_code=503, detail="Device not connected")


def _http_error(e: AcnError) -> HTTPException:
    """Map a device-layer error to an HTTP error."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (DeviceExceptionError, CommandRejectedError, DataIntegrityError)):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, TransportError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _lookup(handler: DeviceHandler, name: str):
    registers = handler.connection.registers
    if name not in registers:
        raise HTTPException(status_code=404, detail=f"Register not found: {name}")
    return registers[name]


@router.get("/status", response_model=StatusResponse)
async def get_status(
    cache: StatusCache = Depends(get_cache),
    handler: DeviceHandler = Depends(get_handler),
):
    """Get the last known device status."""
    return StatusResponse(
        connected=handler.connected,
        last_update=cache.last_update,
        status=await cache.snapshot(),
    )


@router.get("/registers", response_model=list[RegisterInfo])
async def list_registers(handler: DeviceHandler = Depends(get_handler)):
    """Describe every item of the register map."""
    return [
        RegisterInfo(
            name=name,
            title=register.title,
            kind=register.kind.value,
            address=register.address,
            length=register.length,
            writable=register.writable,
            units=register.units,
        )
        for name, register in handler.connection.registers.items()
    ]


@router.get("/registers/{name}", response_model=RegisterValueResponse, responses=ERROR_RESPONSES)
async def read_register(name: str, handler: DeviceHandler = Depends(get_handler)):
    """Read a register or object from the device."""
    _require_connection(handler)
    _lookup(handler, name)

    try:
        register = await handler.read(name)
    except AcnError as e:
        raise _http_error(e) from None

    return RegisterValueResponse(name=name, title=register.title, value=register.format())


@router.post("/registers/{name}", response_model=RegisterValueResponse, responses=ERROR_RESPONSES)
async def write_register(
    name: str,
    request: RegisterWriteRequest,
    handler: DeviceHandler = Depends(get_handler),
):
    """Write a register on the device."""
    _require_connection(handler)
    register = _lookup(handler, name)
    if not register.writable:
        raise HTTPException(status_code=400, detail=f"{register.title} is read-only")

    try:
        register = await handler.write(name, request.value)
    except AcnError as e:
        raise _http_error(e) from None

    return RegisterValueResponse(name=name, title=register.title, value=register.format())


@router.post("/commands/{name}", response_model=CommandResult, responses=ERROR_RESPONSES)
async def run_command(
    name: str,
    request: CommandRequest | None = None,
    handler: DeviceHandler = Depends(get_handler),
):
    """Send a command to the device."""
    _require_connection(handler)

    try:
        return await handler.command(name, request.payload if request else [])
    except AcnError as e:
        raise _http_error(e) from None


@router.post("/scan", responses=ERROR_RESPONSES)
async def scan(request: ScanRequest, handler: DeviceHandler = Depends(get_handler)):
    """Run a network scan and return the channel entries found."""
    _require_connection(handler)

    try:
        return await handler.scan(request.type, request.duration)
    except AcnError as e:
        raise _http_error(e) from None


@router.post("/ping", responses=ERROR_RESPONSES)
async def ping(request: PingRequest, handler: DeviceHandler = Depends(get_handler)):
    """Ping a remote station by short address."""
    _require_connection(handler)

    try:
        return await handler.ping(request.address)
    except AcnError as e:
        raise _http_error(e) from None
