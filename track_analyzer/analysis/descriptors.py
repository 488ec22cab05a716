"""
Human-readable descriptions of analysis scores.

Scores are in [0, 1]. Each description table is checked from the top;
the first threshold strictly below the score wins.
"""

from track_analyzer.spotify.models import AnalyzedTrack
from track_analyzer.utils import format_duration


ENERGY_LEVELS = (
    (0.8, "Very High Energy"),
    (0.6, "High Energy"),
    (0.4, "Moderate Energy"),
    (0.2, "Low Energy"),
)

DANCEABILITY_LEVELS = (
    (0.8, "Extremely Danceable"),
    (0.6, "Very Danceable"),
    (0.4, "Moderately Danceable"),
    (0.2, "Slightly Danceable"),
)

MOOD_LEVELS = (
    (0.8, "Very Positive/Happy"),
    (0.6, "Positive/Upbeat"),
    (0.4, "Neutral"),
    (0.2, "Melancholic"),
)


def _describe(score: float, levels: tuple[tuple[float, str], ...], floor: str) -> str:
    for threshold, label in levels:
        if score > threshold:
            return label
    return floor


def describe_energy(score: float) -> str:
    return _describe(score, ENERGY_LEVELS, "Very Low Energy")


def describe_danceability(score: float) -> str:
    return _describe(score, DANCEABILITY_LEVELS, "Not Danceable")


def describe_mood(valence: float) -> str:
    return _describe(valence, MOOD_LEVELS, "Very Sad/Dark")


def as_percent(score: float) -> str:
    """0.734 -> "73%"."""
    return f"{round(score * 100)}%"


def summarize(track: AnalyzedTrack) -> dict[str, str]:
    """Labelled one-line values for display, in display order."""
    return {
        "Key": track.key_signature,
        "Tempo": f"{round(track.tempo)} BPM",
        "Time Signature": f"{track.time_signature}/4",
        "Energy": f"{as_percent(track.energy)} ({describe_energy(track.energy)})",
        "Danceability": (
            f"{as_percent(track.danceability)} ({describe_danceability(track.danceability)})"
        ),
        "Mood": f"{as_percent(track.valence)} ({describe_mood(track.valence)})",
        "Acousticness": as_percent(track.acousticness),
        "Instrumentalness": as_percent(track.instrumentalness),
        "Liveness": as_percent(track.liveness),
        "Speechiness": as_percent(track.speechiness),
        "Loudness": f"{track.loudness:.1f} dB",
    }
