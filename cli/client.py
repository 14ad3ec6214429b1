from __future__ import annotations

from typing import Any, Dict, List

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for a running tracker."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        headers = {"Authorization": f"Bearer {config.token}"} if config.token else {}
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout, headers=headers)

    def close(self) -> None:
        self._client.close()

    def get_readings(self, start_time: int, end_time: int) -> List[Dict[str, Any]]:
        self._require_token()
        try:
            response = self._client.get(
                "/api/sensor_data",
                params={"start_time": start_time, "end_time": end_time},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        if not isinstance(payload, list):
            raise typer.BadParameter("Unexpected response payload when fetching readings.")
        return payload

    def get_device_status(self) -> Dict[str, Any]:
        self._require_token()
        try:
            response = self._client.get("/api/device_status")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def _require_token(self) -> None:
        if not self._config.token:
            raise typer.BadParameter("An API token is required (use --token or API_TOKEN).")

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
