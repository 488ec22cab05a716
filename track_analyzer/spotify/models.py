"""
Data models for the analysis pipeline.

This module defines the immutable types passed between components:
the resolved track identifier, the access credential, and the canonical
AnalyzedTrack record produced by the normalizer.

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - Raw upstream payloads stay plain dicts and never leave the normalizer
    - Optional values are None when absent, never empty-string sentinels
"""

import json
import math
import time
from dataclasses import dataclass
from typing import Any

from track_analyzer.utils import format_duration


# Raw upstream payloads, provisional until normalized
RawTrackResponse = dict[str, Any]
RawFeatureResponse = dict[str, Any]

# Seconds before the nominal expiry at which a token is treated as expired
EXPIRY_MARGIN_SECONDS = 60

DEFAULT_TRACK_URL_BASE = "https://open.spotify.com"


class TrackIdentifier(str):
    """
    A resolved 22-character base62 track id.

    Subclasses str so it can be used anywhere a plain id is expected,
    while making resolved values distinguishable from raw user input.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return f"TrackIdentifier({str.__repr__(self)})"


@dataclass(frozen=True)
class Credential:
    """
    Access credential obtained through the PKCE exchange.

    Attributes:
        access_token: Bearer token for Web API calls.
        expires_at: Absolute expiry in epoch seconds, None if unknown.
        verifier: The PKCE verifier that produced this token. Kept for
                  traceability only; it is single-use and never resent.
        token_type: Token type reported by the provider.
        scope: Granted scopes, if reported.
    """
    access_token: str
    expires_at: int | None = None
    verifier: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None

    @classmethod
    def from_token_response(
        cls,
        payload: dict[str, Any],
        verifier: str | None = None,
        now: float | None = None
    ) -> "Credential":
        """
        Build a credential from a token endpoint (or callback) payload.

        expires_in is converted to an absolute timestamp so it survives
        being persisted and read back later.
        """
        issued_at = int(now if now is not None else time.time())
        expires_at = None
        expires_in = payload.get("expires_in")
        try:
            if expires_in is not None:
                expires_at = issued_at + int(expires_in)
        except (TypeError, ValueError):
            expires_at = None

        return cls(
            access_token=str(payload["access_token"]),
            expires_at=expires_at,
            verifier=verifier,
            token_type=str(payload.get("token_type") or "Bearer"),
            scope=payload.get("scope"),
        )

    def is_expired(self, now: float | None = None) -> bool:
        """True once the token is within EXPIRY_MARGIN_SECONDS of expiry."""
        if self.expires_at is None:
            return False
        current = now if now is not None else time.time()
        return current >= self.expires_at - EXPIRY_MARGIN_SECONDS

    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def to_storage(self) -> str:
        """Serialize to the string stored under the access token key."""
        return json.dumps({
            "access_token": self.access_token,
            "expires_at": self.expires_at,
            "verifier": self.verifier,
            "token_type": self.token_type,
            "scope": self.scope,
        })

    @classmethod
    def from_storage(cls, value: str) -> "Credential":
        """
        Parse a stored credential.

        A value that is not a JSON object is taken as a bare access token,
        which is what older sessions and direct-token callbacks store.

        Raises:
            ValueError: If there is no usable token or the expiry is NaN or
                infinite.
        """
        value = value.strip()
        if not value:
            raise ValueError("Stored credential is empty")

        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            return cls(access_token=value)

        if not isinstance(data, dict):
            raise ValueError("Stored credential has unexpected structure")

        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            raise ValueError("Stored credential has no access token")

        expires_at = data.get("expires_at")
        if isinstance(expires_at, float) and not math.isfinite(expires_at):
            raise ValueError("Stored credential has a non-finite expiry")

        return cls(
            access_token=token,
            expires_at=int(expires_at) if isinstance(expires_at, (int, float)) else None,
            verifier=data.get("verifier"),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )

    def __repr__(self) -> str:
        # Never print the token itself
        return (
            f"Credential(access_token=<{len(self.access_token)} chars>, "
            f"expires_at={self.expires_at!r}, token_type={self.token_type!r})"
        )


@dataclass(frozen=True)
class AnalyzedTrack:
    """
    Canonical record of a track's metadata and audio characteristics.

    Produced only by the normalizer, fully populated: missing upstream
    fields have already been replaced with their documented defaults.

    Attributes:
        track_id: 22-character track id.
        title: Track title ("Unknown" if absent).
        artists: All artist names, never empty.
        album: Album name ("Unknown" if absent).
        artwork_url: Largest album image, None if absent.
        preview_url: 30-second preview audio, None if absent.
        release_date: Release date as reported ("2024-01-15" or "2024"),
                      None if absent.
        duration_ms: Duration in milliseconds.
        popularity: Popularity score, 0-100.
        explicit: Explicit lyrics flag.
        key: Pitch-class display name ("C", "C♯/D♭", ...) or "Unknown".
        mode: "Major" or "Minor".
        tempo: Tempo in BPM, non-negative.
        time_signature: Beats per bar (default 4).
        loudness: Average loudness in dB.
        energy, danceability, valence, acousticness, instrumentalness,
        liveness, speechiness: Characteristic scores in [0, 1].
    """
    track_id: str
    title: str
    artists: tuple[str, ...]
    album: str
    duration_ms: int
    key: str
    mode: str
    tempo: float
    artwork_url: str | None = None
    preview_url: str | None = None
    release_date: str | None = None
    popularity: int = 0
    explicit: bool = False
    time_signature: int = 4
    loudness: float = 0.0
    energy: float = 0.0
    danceability: float = 0.0
    valence: float = 0.0
    acousticness: float = 0.0
    instrumentalness: float = 0.0
    liveness: float = 0.0
    speechiness: float = 0.0

    @property
    def primary_artist(self) -> str:
        return self.artists[0]

    @property
    def all_artists(self) -> str:
        return ", ".join(self.artists)

    @property
    def key_signature(self) -> str:
        """Key and mode together, e.g. "D Major"."""
        return f"{self.key} {self.mode}"

    @property
    def duration_str(self) -> str:
        """Duration as M:SS, or H:MM:SS past an hour."""
        return format_duration(self.duration_ms)

    def track_url(self, base_url: str = DEFAULT_TRACK_URL_BASE) -> str:
        return f"{base_url.rstrip('/')}/track/{self.track_id}"
