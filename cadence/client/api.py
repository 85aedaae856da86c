"""HTTP client for the generation-jobs endpoints."""

from __future__ import annotations

from typing import Any

import httpx

from cadence.jobs.models import GenerationJob, parse_job


class JobsApiError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _jobs(payload: dict[str, Any]) -> list[GenerationJob]:
    return [parse_job(j) for j in payload.get("jobs") or []]


class JobsApi:
    """Thin wrapper over ``/api/generation-jobs``; ``http`` carries the base URL."""

    def __init__(self, http: httpx.AsyncClient, prefix: str = "/api/generation-jobs"):
        self._http = http
        self._prefix = prefix

    async def _request(self, method: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._http.request(method, self._prefix, **kwargs)
        if response.is_error:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = None
            raise JobsApiError(
                str(detail or f"Request failed: {response.status_code}"),
                status_code=response.status_code,
            )
        return response.json()

    async def get_job(self, job_id: str) -> GenerationJob:
        payload = await self._request("GET", params={"jobId": job_id})
        return parse_job(payload["job"])

    async def list_for_content(self, content_id: str, active_only: bool = False) -> list[GenerationJob]:
        params = {"contentId": content_id}
        if active_only:
            params["activeOnly"] = "true"
        return _jobs(await self._request("GET", params=params))

    async def list_active(self) -> list[GenerationJob]:
        return _jobs(await self._request("GET"))

    async def delete_job(self, job_id: str) -> None:
        await self._request("DELETE", params={"jobId": job_id})

    async def delete_terminal_for_content(self, content_id: str) -> None:
        await self._request("DELETE", params={"contentId": content_id})
