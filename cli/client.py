from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ApiClient:
    """Minimal HTTP client for the load analysis service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def upload_workbook(self, path: Path) -> str:
        if not path.exists():
            raise typer.BadParameter(f"File {path} does not exist.")
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")

        try:
            with path.open("rb") as handle:
                response = self._client.post(
                    "/workbooks",
                    files={"file": (path.name, handle, _XLSX_MEDIA_TYPE)},
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        key = payload.get("key")
        if not isinstance(key, str):
            raise typer.BadParameter("Unexpected response payload when uploading workbook.")
        return key

    def import_workbook(
        self,
        workbook: str,
        sheet_name: Optional[str] = None,
        source: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {"workbook": workbook}
        if sheet_name:
            params["sheet_name"] = sheet_name
        if source is not None:
            params["source"] = source
        response = self._client.post("/readings/import/custom", params=params)
        # Failed imports still carry an ImportResult body worth rendering.
        if response.status_code in (400, 404, 409):
            return response.json()
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def validate_workbook(self, workbook: str, sheet_name: Optional[str] = None) -> bool:
        params = {"workbook": workbook}
        if sheet_name:
            params["sheet_name"] = sheet_name
        payload = self._request("POST", "/readings/validate", params=params)
        return bool(payload.get("is_valid"))

    def aggregated(
        self,
        start: datetime,
        end: datetime,
        days: int,
        report_mode: bool = False,
    ) -> Dict[str, Any]:
        params = {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "days": days,
            "report_mode": str(report_mode).lower(),
        }
        return self._request("GET", "/readings/aggregated", params=params)

    def stats(self) -> Dict[str, Any]:
        count = self._request("GET", "/readings/count")
        date_range = self._request("GET", "/readings/daterange")
        return {**count, **date_range}

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
