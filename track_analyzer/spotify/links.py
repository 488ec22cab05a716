"""
Track link parsing.

Turns whatever the user pasted into a TrackIdentifier. Accepted shapes,
tried in this order:

    https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC?si=...
    https://open.spotify.com/intl-de/track/4uLU6hMCjMI75M1A2tKUQC
    spotify:track:4uLU6hMCjMI75M1A2tKUQC
    4uLU6hMCjMI75M1A2tKUQC

No network access; the same input always gives the same result.
"""

import re

from track_analyzer.spotify.models import DEFAULT_TRACK_URL_BASE, TrackIdentifier


TRACK_ID_LENGTH = 22

_ID = rf"([A-Za-z0-9]{{{TRACK_ID_LENGTH}}})(?![A-Za-z0-9])"

_PATTERNS = (
    # Web URL, any host, optional locale segment before "track/"
    re.compile(rf"track/{_ID}"),
    # Platform URI, e.g. spotify:track:<id>
    re.compile(rf"[A-Za-z][A-Za-z0-9+.-]*:track:{_ID}"),
    # Bare id
    re.compile(rf"^{_ID}$"),
)


def resolve(text: str | None) -> TrackIdentifier | None:
    """
    Extract the track id from a URL, URI or bare id.

    Args:
        text: Raw user input. Surrounding whitespace is ignored.

    Returns:
        The identifier from the first matching pattern, or None when the
        input holds no 22-character base62 track id in a recognized shape.

    Examples:
        resolve("https://open.example.com/track/4uLU6hMCjMI75M1A2tKUQC")
        # TrackIdentifier('4uLU6hMCjMI75M1A2tKUQC')

        resolve("spotify:track:4uLU6hMCjMI75M1A2tKUQC")
        # TrackIdentifier('4uLU6hMCjMI75M1A2tKUQC')

        resolve("https://open.spotify.com/album/4uLU6hMCjMI75M1A2tKUQC")
        # None
    """
    if not text:
        return None

    candidate = text.strip()
    for pattern in _PATTERNS:
        match = pattern.search(candidate)
        if match:
            return TrackIdentifier(match.group(1))
    return None


def track_url(track_id: str, base_url: str = DEFAULT_TRACK_URL_BASE) -> str:
    """Build the public web URL for a track id."""
    return f"{base_url.rstrip('/')}/track/{track_id}"


class LinkResolver:
    """
    Link resolution bound to a web player host.

    Thin wrapper so the orchestrator can take the resolver as a
    collaborator; resolve() itself does not depend on the host.
    """

    def __init__(self, web_url: str = DEFAULT_TRACK_URL_BASE) -> None:
        self.web_url = web_url

    def resolve(self, text: str | None) -> TrackIdentifier | None:
        return resolve(text)

    def track_url(self, track_id: str) -> str:
        return track_url(track_id, self.web_url)
