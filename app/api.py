"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.schemas import DeviceStatus, ErrorResponse, Reading
from datastore.reading_store import ReadingStore
from errors import ValidationError
from services.auth import require_bearer_token
from services.telemetry import TelemetrySnapshot

logger = logging.getLogger(__name__)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_EPOCH_MILLIS = re.compile(r"[+-]?\d+", re.ASCII)

_AUTH_RESPONSES = {
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Authentication failed."},
}

router = APIRouter(
    prefix="/api",
    dependencies=[Depends(require_bearer_token)],
    responses=_AUTH_RESPONSES,
)
health_router = APIRouter()


def get_reading_store(request: Request) -> ReadingStore:
    return request.app.state.reading_store


def get_telemetry(request: Request) -> TelemetrySnapshot:
    return request.app.state.telemetry


def parse_epoch_millis(name: str, value: Optional[str]) -> int:
    if value is None or not value.strip():
        raise ValidationError(f"Missing required query parameter '{name}'.")
    if not _EPOCH_MILLIS.fullmatch(value):
        raise ValidationError(
            f"Query parameter '{name}' must be an integer epoch timestamp in milliseconds."
        )
    parsed = int(value)
    if not _INT64_MIN <= parsed <= _INT64_MAX:
        raise ValidationError(f"Query parameter '{name}' is out of range.")
    return parsed


@router.get(
    "/sensor_data",
    response_model=List[Reading],
    summary="Stored readings within an inclusive time range, newest first.",
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
)
async def get_sensor_data(
    start_time: Optional[str] = Query(None, description="Range start, epoch milliseconds."),
    end_time: Optional[str] = Query(None, description="Range end, epoch milliseconds."),
    store: ReadingStore = Depends(get_reading_store),
) -> List[Reading]:
    start_millis = parse_epoch_millis("start_time", start_time)
    end_millis = parse_epoch_millis("end_time", end_time)
    readings = store.query_range(start_millis, end_millis)
    logger.info(
        "Served sensor data",
        extra={"start_time": start_millis, "end_time": end_millis, "row_count": len(readings)},
    )
    return readings


@router.get(
    "/device_status",
    response_model=DeviceStatus,
    summary="Live battery, network and storage snapshot.",
)
def get_device_status(
    telemetry: TelemetrySnapshot = Depends(get_telemetry),
) -> DeviceStatus:
    return telemetry.snapshot()


@health_router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
