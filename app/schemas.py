"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Reading(BaseModel):
    """A persisted location sample."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[int] = Field(default=None, description="Store-assigned identifier.")
    latitude: float
    longitude: float
    captured_at_millis: int = Field(
        ..., alias="timestamp", description="Capture time in epoch milliseconds."
    )
    device_id: str = Field(..., alias="deviceId")


class Credential(BaseModel):
    """The single API bearer credential."""

    token: str


class ConnectionType(str, Enum):
    """Kinds of network link reported in the device status."""

    wifi = "WiFi"
    cellular = "Cellular"
    ethernet = "Ethernet"
    not_connected = "NotConnected"


class BatteryStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level_percent: int = Field(..., alias="levelPercent")
    is_charging: bool = Field(..., alias="isCharging")


class NetworkStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_connected: bool = Field(..., alias="isConnected")
    connection_type: ConnectionType = Field(..., alias="connectionType")


class StorageStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    available_gb: float = Field(..., alias="availableGB")
    total_gb: float = Field(..., alias="totalGB")


class DeviceStatus(BaseModel):
    """Point-in-time telemetry for the host device. Never persisted."""

    model_config = ConfigDict(populate_by_name=True)

    battery: BatteryStatus
    network: NetworkStatus
    storage: StorageStatus
    os_version: str = Field(default="", alias="osVersion")
    device_model: str = Field(default="", alias="deviceModel")
    sdk_version: str = Field(default="", alias="sdkVersion")


class ErrorResponse(BaseModel):
    """Body returned for every handled error."""

    error: str
