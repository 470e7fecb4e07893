"""Clients for the preservation version registry."""

from __future__ import annotations

import abc
import logging
from typing import Dict, Optional

import httpx

from .config import ObjversionConfig, load_config
from .exceptions import PreservationObjectNotFoundError, PreservationUnavailableError

logger = logging.getLogger(__name__)


class PreservationRegistry(metaclass=abc.ABCMeta):
    """Highest version preservation has durably ingested for an object."""

    @abc.abstractmethod
    async def current_version(self, external_identifier: str) -> int:
        """Return the preserved version or raise ``PreservationObjectNotFoundError``."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release resources (no-op by default)."""
        pass


class InMemoryPreservationRegistry(PreservationRegistry):
    """Registry kept in a dict, for tests and local development."""

    def __init__(self, versions: Optional[Dict[str, int]] = None) -> None:
        self._versions: Dict[str, int] = dict(versions or {})

    def set_version(self, external_identifier: str, version: int) -> None:
        self._versions[external_identifier] = version

    def forget(self, external_identifier: str) -> None:
        self._versions.pop(external_identifier, None)

    async def current_version(self, external_identifier: str) -> int:
        if external_identifier not in self._versions:
            raise PreservationObjectNotFoundError(external_identifier)
        return self._versions[external_identifier]


class HttpPreservationRegistry(PreservationRegistry):
    """Query a preservation catalog over HTTP.

    ``GET {base_url}/v1/objects/{id}.json`` answers ``{"current_version": n}``.
    A 404 means preservation has not seen the object; any other failure is
    reported as ``PreservationUnavailableError``. No retries are made here.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout
        )

    async def current_version(self, external_identifier: str) -> int:
        try:
            response = await self._client.get(f"/v1/objects/{external_identifier}.json")
        except httpx.HTTPError as exc:
            logger.error(f"Preservation request for {external_identifier} failed: {exc}")
            raise PreservationUnavailableError(
                f"Unable to reach preservation for {external_identifier}: {exc}"
            ) from exc

        if response.status_code == 404:
            raise PreservationObjectNotFoundError(external_identifier)
        if response.is_error:
            raise PreservationUnavailableError(
                f"Preservation answered {response.status_code} for {external_identifier}"
            )
        try:
            return int(response.json()["current_version"])
        except (ValueError, KeyError, TypeError) as exc:
            raise PreservationUnavailableError(
                f"Unexpected preservation response for {external_identifier}: {response.text}"
            ) from exc

    async def close(self) -> None:
        await self._client.aclose()


_registry_instance: PreservationRegistry | None = None


def get_preservation_registry(
    config: Optional[ObjversionConfig] = None,
) -> PreservationRegistry:
    """Factory for the configured registry; in-memory when no URL is set."""

    global _registry_instance
    if _registry_instance is not None and config is None:
        return _registry_instance

    config = config or load_config()
    preservation = config.preservation
    if preservation.url:
        _registry_instance = HttpPreservationRegistry(
            preservation.url, token=preservation.token, timeout=preservation.timeout
        )
    else:
        _registry_instance = InMemoryPreservationRegistry()
    return _registry_instance
