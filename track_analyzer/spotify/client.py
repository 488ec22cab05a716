"""
Web API client for track metadata and audio features.

TrackDataClient issues exactly one authenticated GET per call and
classifies every failure:

    HTTP 401                     -> UnauthorizedError
    any other non-2xx            -> UpstreamRejectedError
    no HTTP response at all      -> TransportError
    2xx with a non-object body   -> UpstreamRejectedError

All three derive from UpstreamUnavailableError. There are no retries here;
deciding what to do with a failure is the orchestrator's job.

Usage:
    async with TrackDataClient.from_config(config.api) as client:
        track = await client.fetch_track(track_id, credential)
        features = await client.fetch_features(track_id, credential)
"""

import asyncio
import json
from typing import Any

import aiohttp

from track_analyzer.core.config import ApiConfig
from track_analyzer.core.exceptions import (
    TransportError,
    UnauthorizedError,
    UpstreamRejectedError,
)
from track_analyzer.core.logger import get_logger
from track_analyzer.spotify.models import Credential, RawFeatureResponse, RawTrackResponse

logger = get_logger(__name__)


# Longest slice of an error body kept in exception details
ERROR_BODY_LIMIT = 500


class TrackDataClient:
    """
    Authenticated fetches of raw track and feature payloads.

    Attributes:
        config: Endpoint settings (base URLs, features path, proxy headers).

    The HTTP session is either injected (the caller owns and closes it) or
    created by `async with TrackDataClient(...)` and closed on exit.
    """

    def __init__(
        self,
        config: ApiConfig,
        session: aiohttp.ClientSession | None = None
    ) -> None:
        self.config = config
        self._session = session
        self._owns_session = False

    @classmethod
    def from_config(cls, config: ApiConfig) -> "TrackDataClient":
        return cls(config)

    async def __aenter__(self) -> "TrackDataClient":
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    # =========================================================================
    # Fetch Operations
    # =========================================================================

    def track_url(self, track_id: str) -> str:
        return f"{self.config.base_url}/tracks/{track_id}"

    def features_url(self, track_id: str) -> str:
        return self.config.features_base_url + self.config.features_path.replace("{id}", track_id)

    async def fetch_track(self, track_id: str, credential: Credential) -> RawTrackResponse:
        """
        Get track metadata.

        Args:
            track_id: Resolved track id.
            credential: Active credential; sent as a bearer token.

        Returns:
            Raw track object (title, artists, album, duration...).

        Raises:
            UnauthorizedError: Token expired or invalid (401).
            UpstreamRejectedError: Any other non-success response.
            TransportError: Network-level failure.
        """
        return await self._get_json(
            self.track_url(track_id),
            credential.authorization_header(),
            resource="track",
            track_id=track_id,
        )

    async def fetch_features(self, track_id: str, credential: Credential) -> RawFeatureResponse:
        """
        Get audio features (tempo, key, mode, characteristic scores).

        The request goes to the configured features endpoint, which may be a
        proxy; the proxy's extra headers are added to the bearer header.

        Raises:
            Same as fetch_track().
        """
        headers = {**self.config.features_headers, **credential.authorization_header()}
        return await self._get_json(
            self.features_url(track_id),
            headers,
            resource="audio features",
            track_id=track_id,
        )

    async def _get_json(
        self,
        url: str,
        headers: dict[str, str],
        resource: str,
        track_id: str
    ) -> dict[str, Any]:
        if self._session is None:
            raise RuntimeError(
                "TrackDataClient has no HTTP session; use 'async with' "
                "or pass a session to the constructor"
            )

        logger.debug(f"GET {url}")
        try:
            async with self._session.get(url, headers=headers) as response:
                status = response.status
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Network error while fetching {resource}: {str(e) or type(e).__name__}",
                details={"track_id": track_id, "url": url, "original_error": repr(e)}
            ) from e

        details = {"track_id": track_id, "url": url, "http_status": status}

        if status == 401:
            raise UnauthorizedError(
                f"Access token rejected while fetching {resource}",
                details=details,
                status=status,
            )

        if not 200 <= status < 300:
            raise UpstreamRejectedError(
                f"Failed to fetch {resource}: HTTP {status} {_error_summary(body)}".rstrip(),
                details={**details, "body": body[:ERROR_BODY_LIMIT]},
                status=status,
            )

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise UpstreamRejectedError(
                f"Invalid JSON in {resource} response",
                details={**details, "body": body[:ERROR_BODY_LIMIT]},
                status=status,
            ) from e

        if not isinstance(payload, dict):
            raise UpstreamRejectedError(
                f"Unexpected {resource} response: expected a JSON object",
                details=details,
                status=status,
            )

        logger.debug(f"Fetched {resource} for {track_id}")
        return payload


def _error_summary(body: str) -> str:
    """
    Pull the provider's message out of an error body.

    The Web API reports {"error": {"status": 404, "message": "..."}};
    OAuth-style endpoints use {"error": "...", "error_description": "..."}.
    """
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip()[:200]

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("error_description"):
            return str(payload["error_description"])
        if isinstance(error, str):
            return error
        if payload.get("message"):
            return str(payload["message"])
    return ""
