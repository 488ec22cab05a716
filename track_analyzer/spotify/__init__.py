"""
Web API integration for track-analyzer.

This module handles everything that talks to the music service:
    - links: Parse track URLs, URIs and bare ids
    - auth: PKCE login flow and credential ownership
    - callback: Loopback receiver for the login redirect
    - client: Authenticated fetches of track metadata and audio features
    - models: Credential, TrackIdentifier and the canonical AnalyzedTrack

Usage:
    from track_analyzer.spotify import (
        PKCEAuthenticator,
        TrackDataClient,
        resolve,
    )
"""

from track_analyzer.spotify.auth import (
    AuthState,
    PKCEAuthenticator,
    derive_challenge,
    generate_verifier,
    parse_callback,
    strip_callback_params,
)
from track_analyzer.spotify.callback import is_loopback_redirect, wait_for_callback
from track_analyzer.spotify.client import TrackDataClient
from track_analyzer.spotify.links import LinkResolver, resolve, track_url
from track_analyzer.spotify.models import (
    AnalyzedTrack,
    Credential,
    RawFeatureResponse,
    RawTrackResponse,
    TrackIdentifier,
)

__all__ = [
    # Auth
    "AuthState",
    "PKCEAuthenticator",
    "derive_challenge",
    "generate_verifier",
    "parse_callback",
    "strip_callback_params",
    # Callback
    "is_loopback_redirect",
    "wait_for_callback",
    # Client
    "TrackDataClient",
    # Links
    "LinkResolver",
    "resolve",
    "track_url",
    # Models
    "AnalyzedTrack",
    "Credential",
    "RawFeatureResponse",
    "RawTrackResponse",
    "TrackIdentifier",
]
