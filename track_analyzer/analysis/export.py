"""
Plain-text export of an analyzed track.

File Naming:
    {primary artist} - {title} - Info.txt

    Both parts are sanitized for cross-platform filenames. An existing
    file with the same name is overwritten.

Content:
    The basic export lists title, artists, key/mode and tempo along with
    the track link. The extended export adds album details, duration,
    time signature, loudness and every characteristic score with its
    description.
"""

import re
from datetime import datetime
from pathlib import Path

from track_analyzer.analysis.descriptors import (
    as_percent,
    describe_danceability,
    describe_energy,
    describe_mood,
    format_duration,
)
from track_analyzer.core.exceptions import ExportError
from track_analyzer.core.logger import get_logger
from track_analyzer.spotify.models import DEFAULT_TRACK_URL_BASE, AnalyzedTrack

logger = get_logger(__name__)


# Characters that are invalid in filenames on various operating systems
_INVALID_CHARS_PATTERN = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

# Maximum length of each filename component
_MAX_COMPONENT_LENGTH = 100

_RULE = "=" * 43


def sanitize_filename(name: str) -> str:
    """
    Sanitize a string for use in a filename.

    Behavior:
        - Replaces invalid characters with underscores
        - Strips leading/trailing whitespace and dots
        - Truncates to maximum length
        - Returns "Unknown" if result is empty
    """
    if not name:
        return "Unknown"

    result = _INVALID_CHARS_PATTERN.sub("_", name)
    result = result.strip(" .")

    if len(result) > _MAX_COMPONENT_LENGTH:
        result = result[:_MAX_COMPONENT_LENGTH].rstrip(" .")

    return result if result else "Unknown"


def export_filename(track: AnalyzedTrack) -> str:
    """
    Example:
        export_filename(track)  # "Queen - Bohemian Rhapsody - Info.txt"
    """
    artist = sanitize_filename(track.primary_artist)
    title = sanitize_filename(track.title)
    return f"{artist} - {title} - Info.txt"


def render_export(
    track: AnalyzedTrack,
    extended: bool = True,
    generated_at: datetime | None = None,
    web_url: str = DEFAULT_TRACK_URL_BASE
) -> str:
    """
    Render the export text for a track.

    Args:
        track: Canonical record to export.
        extended: Include album details and the full characteristics block.
        generated_at: Timestamp written in the footer (defaults to now).
        web_url: Web host used for the track link.

    Returns:
        The export text, newline terminated.
    """
    generated_at = generated_at or datetime.now()

    lines = [
        _RULE,
        "    TRACK INFORMATION",
        _RULE,
        "",
        "Track Details:",
        "--------------",
        f"Title: {track.title}",
        f"Artist: {track.all_artists}",
    ]

    if extended:
        lines += [
            f"Album: {track.album}",
            f"Release Date: {track.release_date or 'Unknown'}",
            f"Duration: {format_duration(track.duration_ms)}",
            f"Popularity: {track.popularity}/100",
            f"Explicit: {'Yes' if track.explicit else 'No'}",
        ]

    lines += [
        "",
        "Links:",
        "------",
        f"Track ID: {track.track_id}",
        f"Track URL: {track.track_url(web_url)}",
        "",
        "Audio Analysis:",
        "---------------",
        f"Key: {track.key_signature}",
        f"Tempo: {round(track.tempo)} BPM",
    ]

    if extended:
        lines += [
            f"Time Signature: {track.time_signature}/4",
            f"Loudness: {track.loudness:.1f} dB",
            "",
            "Musical Characteristics:",
            "------------------------",
            f"Energy: {as_percent(track.energy)} - {describe_energy(track.energy)}",
            f"Danceability: {as_percent(track.danceability)} - "
            f"{describe_danceability(track.danceability)}",
            f"Valence: {as_percent(track.valence)} - {describe_mood(track.valence)}",
            f"Acousticness: {as_percent(track.acousticness)}",
            f"Instrumentalness: {as_percent(track.instrumentalness)}",
            f"Liveness: {as_percent(track.liveness)}",
            f"Speechiness: {as_percent(track.speechiness)}",
        ]

    lines += [
        "",
        _RULE,
        f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
        _RULE,
    ]
    return "\n".join(lines) + "\n"


def write_export(
    track: AnalyzedTrack,
    directory: Path,
    extended: bool = True,
    web_url: str = DEFAULT_TRACK_URL_BASE
) -> Path:
    """
    Write the export file for a track into directory.

    Returns:
        Path of the written file.

    Raises:
        ExportError: Directory cannot be created or file cannot be written.
    """
    path = Path(directory) / export_filename(track)
    content = render_export(track, extended=extended, web_url=web_url)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ExportError(
            f"Cannot write export file {path}: {e}",
            details={"path": str(path), "original_error": str(e)}
        ) from e

    logger.info(f"Exported track info to {path}")
    return path
