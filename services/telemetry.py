"""On-demand device telemetry (battery, network, storage)."""

from __future__ import annotations

import logging
import platform
import shutil
from typing import Callable, Optional

import psutil

from app.schemas import (
    BatteryStatus,
    ConnectionType,
    DeviceStatus,
    NetworkStatus,
    StorageStatus,
)
from errors import TelemetryPartialError

logger = logging.getLogger(__name__)

_BYTES_PER_GB = 1024.0 * 1024.0 * 1024.0

BATTERY_UNAVAILABLE = BatteryStatus(level_percent=-1, is_charging=False)
NETWORK_UNAVAILABLE = NetworkStatus(is_connected=False, connection_type=ConnectionType.not_connected)
STORAGE_UNAVAILABLE = StorageStatus(available_gb=-1.0, total_gb=-1.0)

# Interface name prefixes, checked in order.
_INTERFACE_KINDS = (
    (("wl", "wifi", "ath"), ConnectionType.wifi),
    (("wwan", "rmnet", "ppp", "usb", "ccmni"), ConnectionType.cellular),
    (("eth", "en"), ConnectionType.ethernet),
)


def read_battery() -> BatteryStatus:
    battery = psutil.sensors_battery()
    if battery is None:
        return BATTERY_UNAVAILABLE
    return BatteryStatus(
        level_percent=int(battery.percent),
        is_charging=bool(battery.power_plugged),
    )


def classify_interface(name: str) -> Optional[ConnectionType]:
    lowered = name.lower()
    for prefixes, kind in _INTERFACE_KINDS:
        if lowered.startswith(prefixes):
            return kind
    return None


def read_network() -> NetworkStatus:
    active = [
        name
        for name, stats in psutil.net_if_stats().items()
        if stats.isup and not name.lower().startswith("lo")
    ]
    for _prefixes, kind in _INTERFACE_KINDS:
        if any(classify_interface(name) is kind for name in active):
            return NetworkStatus(is_connected=True, connection_type=kind)
    return NETWORK_UNAVAILABLE


def storage_reader(path: str) -> Callable[[], StorageStatus]:
    def read_storage() -> StorageStatus:
        usage = shutil.disk_usage(path)
        return StorageStatus(
            available_gb=round(usage.free / _BYTES_PER_GB, 2),
            total_gb=round(usage.total / _BYTES_PER_GB, 2),
        )

    return read_storage


class TelemetrySnapshot:
    """Assembles a :class:`DeviceStatus` from independent probes.

    Nothing is cached. A probe that raises is replaced by its sentinel so the
    rest of the snapshot is still returned.
    """

    def __init__(
        self,
        battery_probe: Callable[[], BatteryStatus] = read_battery,
        network_probe: Callable[[], NetworkStatus] = read_network,
        storage_probe: Optional[Callable[[], StorageStatus]] = None,
        storage_path: str = "/",
    ) -> None:
        self.battery_probe = battery_probe
        self.network_probe = network_probe
        self.storage_probe = storage_probe or storage_reader(storage_path)

    def snapshot(self) -> DeviceStatus:
        return DeviceStatus(
            battery=self._probe("battery", self.battery_probe, BATTERY_UNAVAILABLE),
            network=self._probe("network", self.network_probe, NETWORK_UNAVAILABLE),
            storage=self._probe("storage", self.storage_probe, STORAGE_UNAVAILABLE),
            os_version=platform.release(),
            device_model=platform.machine(),
            sdk_version=platform.version(),
        )

    @staticmethod
    def _probe(name, probe, fallback):
        try:
            return probe()
        except Exception as exc:  # noqa: BLE001 - any probe failure degrades to a sentinel
            error = TelemetryPartialError(name, exc)
            logger.warning(error.message, extra={"probe": name})
            return fallback
