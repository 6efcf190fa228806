from __future__ import annotations

import time
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from .config import ClientSettings
from .errors import ApiError
from .logger import logger
from .schemas.api import DiskResultsPage, ErrorBody, Instance, InstanceCreate


def _raise_for_status(response: httpx.Response, content: bytes) -> None:
    if response.is_success:
        return
    try:
        body = ErrorBody.model_validate_json(content)
    except PydanticValidationError:
        text = content.decode(response.encoding or "utf-8", errors="replace")
        raise ApiError(response.status_code, text or response.reason_phrase) from None
    raise ApiError(
        response.status_code,
        body.message,
        error_code=body.error_code,
        request_id=body.request_id,
    )


class ControlPlaneClient:
    """
    Thin typed wrapper over the control-plane instance endpoints.
    Every call is attempted once; callers own retries and deadlines.
    """

    def __init__(
        self, host: str, token: str, http_client: httpx.Client | None = None
    ) -> None:
        self._http = http_client or httpx.Client(base_url=host)
        self._http.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> ControlPlaneClient:
        http = httpx.Client(
            base_url=settings.host,
            verify=not settings.insecure_skip_verify,
            timeout=httpx.Timeout(None, connect=settings.connect_timeout),
        )
        return cls(settings.host, settings.token, http_client=http)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> ControlPlaneClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> bytes:
        """
        Sends one request and returns the response body.

        ``timeout`` bounds the whole call, not each socket read: the body is
        streamed and the clock is checked after every chunk, so a server that
        trickles bytes cannot stretch the call past it.
        """
        logger.debug(f"{method} {path}")
        expires_at = None if timeout is None else time.monotonic() + timeout

        with self._http.stream(
            method,
            path,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            **kwargs,
        ) as response:
            chunks = []
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if expires_at is not None and time.monotonic() >= expires_at:
                    raise httpx.ReadTimeout(
                        f"{method} {path} did not finish within {timeout:.3f}s",
                        request=response.request,
                    )

        body = b"".join(chunks)
        _raise_for_status(response, body)
        return body

    def instance_create(
        self, project: str, body: InstanceCreate, timeout: float | None = None
    ) -> Instance:
        content = self._request(
            "POST",
            "/v1/instances",
            timeout=timeout,
            params={"project": project},
            json=body.model_dump(mode="json"),
        )
        return Instance.model_validate_json(content)

    def instance_view(self, instance: str, timeout: float | None = None) -> Instance:
        content = self._request("GET", f"/v1/instances/{instance}", timeout=timeout)
        return Instance.model_validate_json(content)

    def instance_disk_list(
        self, instance: str, limit: int, timeout: float | None = None
    ) -> DiskResultsPage:
        content = self._request(
            "GET",
            f"/v1/instances/{instance}/disks",
            timeout=timeout,
            params={"limit": limit},
        )
        return DiskResultsPage.model_validate_json(content)

    def instance_disk_detach(
        self, instance: str, disk: str, timeout: float | None = None
    ) -> None:
        self._request(
            "POST",
            f"/v1/instances/{instance}/disks/detach",
            timeout=timeout,
            json={"disk": disk},
        )

    def instance_stop(self, instance: str, timeout: float | None = None) -> Instance:
        content = self._request(
            "POST", f"/v1/instances/{instance}/stop", timeout=timeout
        )
        return Instance.model_validate_json(content)

    def instance_delete(self, instance: str, timeout: float | None = None) -> None:
        self._request("DELETE", f"/v1/instances/{instance}", timeout=timeout)
