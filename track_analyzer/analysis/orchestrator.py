"""
Analysis orchestration: link -> credential -> fetch -> normalize.

Flow:
    1. Resolve the input to a track id (InvalidLinkError when nothing matches)
    2. Check the credential:
        - none: start a login and raise AuthenticationRequiredError
          carrying the consent URL
        - expired: invalidate it and raise SessionExpiredError
    3. Fetch track metadata and audio features concurrently; both
       requests finish before anything is decided
    4. A 401 from either fetch invalidates the credential and raises
       SessionExpiredError; this wins over any other failure
    5. Normalize both payloads into one AnalyzedTrack

Any failure ends the request; a partially filled record is never returned.

Superseding:
    Each analyze() call takes a new generation number and cancels the call
    still in flight, if any. A call whose generation is no longer current
    raises AnalysisSupersededError instead of returning, so a slow earlier
    request can never overwrite the result of a later one.
"""

import asyncio
from typing import Any

from track_analyzer.analysis.normalizer import FeatureNormalizer
from track_analyzer.core.config import AnalysisConfig
from track_analyzer.core.exceptions import (
    AnalysisSupersededError,
    AuthenticationRequiredError,
    InvalidLinkError,
    SessionExpiredError,
    UnauthorizedError,
    UpstreamRejectedError,
)
from track_analyzer.core.logger import get_logger
from track_analyzer.spotify.auth import PKCEAuthenticator
from track_analyzer.spotify.client import TrackDataClient
from track_analyzer.spotify.links import LinkResolver
from track_analyzer.spotify.models import AnalyzedTrack, Credential, RawTrackResponse

logger = get_logger(__name__)


def placeholder_track(track_id: str) -> RawTrackResponse:
    """Metadata stand-in used when placeholder_metadata is enabled."""
    return {
        "id": track_id,
        "name": f"Track {track_id}",
        "artists": [],
        "album": {"name": "Unknown Album", "images": []},
        "duration_ms": 0,
    }


def _has_title(raw_track: Any) -> bool:
    name = raw_track.get("name") if isinstance(raw_track, dict) else None
    return isinstance(name, str) and bool(name.strip())


class AnalysisOrchestrator:
    """
    Runs one analysis request end to end.

    Attributes:
        resolver: Link parser.
        authenticator: Owner of the credential.
        client: Upstream fetcher.
        config: Analysis options.
    """

    def __init__(
        self,
        resolver: LinkResolver,
        authenticator: PKCEAuthenticator,
        client: TrackDataClient,
        config: AnalysisConfig | None = None,
        normalizer: FeatureNormalizer | None = None
    ) -> None:
        self.resolver = resolver
        self.authenticator = authenticator
        self.client = client
        self.config = config or AnalysisConfig()
        self.normalizer = normalizer or FeatureNormalizer()

        self._generation = 0
        self._inflight: asyncio.Task | None = None

    @property
    def generation(self) -> int:
        return self._generation

    async def analyze(self, user_input: str) -> AnalyzedTrack:
        """
        Analyze the track referenced by user_input.

        Args:
            user_input: Track URL, track URI or bare track id.

        Returns:
            The canonical record for the track.

        Raises:
            InvalidLinkError: No track id in the input.
            AuthenticationRequiredError: No credential; a login was started
                and the consent URL is in details['authorization_url'].
            SessionExpiredError: Credential expired or rejected (cleared).
            UpstreamRejectedError: Provider refused a fetch.
            TransportError: Network failure during a fetch.
            AnalysisSupersededError: A newer analyze() call replaced this one.
        """
        self._generation += 1
        generation = self._generation

        previous = self._inflight
        if previous is not None and not previous.done():
            logger.debug("Cancelling superseded analysis")
            previous.cancel()

        task = asyncio.ensure_future(self._run(user_input))
        self._inflight = task
        try:
            result = await task
        except asyncio.CancelledError:
            if generation == self._generation:
                raise
            raise AnalysisSupersededError(
                "Analysis cancelled by a newer request",
                details={"input": user_input}
            ) from None
        except AnalysisSupersededError:
            raise
        except Exception as e:
            if generation != self._generation:
                raise AnalysisSupersededError(
                    "Analysis failed after a newer request started",
                    details={"input": user_input, "original_error": str(e)}
                ) from e
            raise
        finally:
            if self._inflight is task:
                self._inflight = None

        if generation != self._generation:
            raise AnalysisSupersededError(
                "Analysis result discarded for a newer request",
                details={"input": user_input, "track_id": result.track_id}
            )
        return result

    async def _run(self, user_input: str) -> AnalyzedTrack:
        track_id = self.resolver.resolve(user_input)
        if track_id is None:
            raise InvalidLinkError(
                "No track id found in input",
                details={"input": (user_input or "").strip()[:200]}
            )

        credential = self._require_credential(track_id)

        logger.info(f"Analyzing track {track_id}")
        raw_track, raw_features = await self._fetch(track_id, credential)

        return self.normalizer.normalize(raw_track, raw_features, track_id)

    def _require_credential(self, track_id: str) -> Credential:
        credential = self.authenticator.current_credential()

        if credential is None:
            authorization_url = self.authenticator.begin_login()
            raise AuthenticationRequiredError(
                "No access credential; login required",
                details={"authorization_url": authorization_url, "track_id": track_id}
            )

        if credential.is_expired():
            self.authenticator.invalidate(expected=credential)
            raise SessionExpiredError(
                "Stored access token has expired",
                details={"track_id": track_id, "expires_at": credential.expires_at}
            )

        return credential

    async def _fetch(
        self,
        track_id: str,
        credential: Credential
    ) -> tuple[Any, Any]:
        results = await asyncio.gather(
            self.client.fetch_track(track_id, credential),
            self.client.fetch_features(track_id, credential),
            return_exceptions=True,
        )
        raw_track, raw_features = results

        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        for result in results:
            if isinstance(result, UnauthorizedError):
                self.authenticator.invalidate(expected=credential)
                raise SessionExpiredError(
                    "Access token rejected by the provider",
                    details={"track_id": track_id, "http_status": result.status}
                ) from result

        if isinstance(raw_track, Exception):
            if (
                self.config.placeholder_metadata
                and isinstance(raw_track, UpstreamRejectedError)
                and not isinstance(raw_features, Exception)
            ):
                logger.warning(
                    f"Metadata fetch failed for {track_id} ({raw_track.message}); "
                    f"using placeholder metadata"
                )
                raw_track = placeholder_track(track_id)
            else:
                raise raw_track

        if isinstance(raw_features, Exception):
            raise raw_features

        if self.config.placeholder_metadata and not _has_title(raw_track):
            logger.warning(f"Metadata for {track_id} has no title; using placeholder metadata")
            raw_track = placeholder_track(track_id)

        return raw_track, raw_features
