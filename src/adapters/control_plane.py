"""Control-plane HTTP client.

Thin typed wrapper over the control plane's endpoints. The accept/reject
semantics of the server are opaque: 2xx is accepted, anything else becomes a
`RequestRejectedError`. Transport failures become `NetworkError`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from adapters.http_client import describe_transport_error
from core.domain.models import DeploymentRequest
from core.errors import NetworkError, RequestRejectedError

log = logging.getLogger(__name__)


def _segment(value: Any) -> str:
    """One URL path segment; `/`, `?` and `#` in names stay inside it."""

    return quote(str(value), safe="")


class ControlPlaneClient:
    """Issues requests against one resolved base URL."""

    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, str] | None = None,
        check: bool = True,
    ) -> httpx.Response:
        url = self.url(path)
        log.debug("%s %s params=%s", method, url, params)
        try:
            response = await self._client.request(method, url, json=json_body, params=params)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Request to the control plane failed: {describe_transport_error(exc)}") from exc
        if check and not response.is_success:
            raise RequestRejectedError(method, url, response.status_code, response.text)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(f"Control plane returned a non-JSON body: {response.text[:200]!r}") from exc

    async def upload_service(self, request: DeploymentRequest) -> httpx.Response:
        return await self._send("POST", "/upload_service", json_body=request.model_dump(mode="json"))

    async def list_services(self, service_name: str | None = None) -> list[dict[str, Any]]:
        params = {"service_name": service_name} if service_name else None
        data = self._json(await self._send("GET", "/list_service", params=params))
        if not isinstance(data, list):
            raise NetworkError("Control plane returned an unexpected service list (not an array).")
        return [item for item in data if isinstance(item, dict)]

    async def delete_service(self, service_name: str, version: int | None = None) -> httpx.Response:
        params = {"service_version": str(version)} if version is not None else None
        return await self._send("POST", f"/delete_service/{_segment(service_name)}", params=params)

    async def scale_service(self, service_name: str, version: str, changes: dict[str, Any]) -> httpx.Response:
        return await self._send("POST", f"/scale_service/{_segment(service_name)}/{_segment(version)}", json_body=changes)

    async def list_jobs(self, service_name: str) -> dict[str, dict[str, Any]]:
        data = self._json(await self._send("GET", f"/jobs/{_segment(service_name)}"))
        if not isinstance(data, dict):
            raise NetworkError("Control plane returned unexpected jobs data (not an object).")
        return {str(k): v for k, v in data.items() if isinstance(v, dict)}

    async def job_logs(
        self,
        service_name: str,
        job_id: str,
        *,
        include_input: bool = True,
        include_response: bool = True,
        include_logs: bool = True,
        include_timer: bool = True,
    ) -> dict[str, Any]:
        params = {
            "input": str(include_input).lower(),
            "response": str(include_response).lower(),
            "logs": str(include_logs).lower(),
            "timer": str(include_timer).lower(),
        }
        data = self._json(await self._send("GET", f"/logs/{_segment(service_name)}/{_segment(job_id)}", params=params))
        if not isinstance(data, dict):
            raise NetworkError("Control plane returned unexpected log data (not an object).")
        return data

    async def handle_request(self, service_name: str, body: dict[str, Any]) -> httpx.Response:
        """Invoke a deployed service; the response is returned whatever its status."""

        return await self._send("POST", f"/handle_request/{_segment(service_name)}", json_body=body, check=False)
