"""
Normalization of upstream payloads into AnalyzedTrack.

Providers disagree on shapes: numbers sometimes arrive as text, the key
is a pitch-class index on one endpoint and a display name on another,
lists go missing. Every raw value passes through decode() first, which
tags it as a number, numeric text, plain text or missing; the field
converters below only ever look at that tag.

Defaults for missing or unusable values:
    continuous features, loudness, duration, popularity  -> 0
    time signature                                        -> 4
    title, album, key                                     -> "Unknown"
    artists                                               -> ("Unknown Artist",)
    artwork, preview, release date                        -> None
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from track_analyzer.core.logger import get_logger
from track_analyzer.spotify.models import AnalyzedTrack

logger = get_logger(__name__)


UNKNOWN = "Unknown"
UNKNOWN_ARTIST = "Unknown Artist"
DEFAULT_TIME_SIGNATURE = 4

PITCH_CLASSES = (
    "C", "C♯/D♭", "D", "D♯/E♭", "E", "F",
    "F♯/G♭", "G", "G♯/A♭", "A", "A♯/B♭", "B",
)

_NATURAL_INDEX = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_SHARP_TOKENS = frozenset({"#", "♯", "sharp"})
_FLAT_TOKENS = frozenset({"b", "♭", "flat"})
_MODE_WORDS = frozenset({"m", "min", "minor", "maj", "major"})

_KEY_NAME = re.compile(r"^([A-Ga-g])\s*(?:-\s*)?(#|♯|b|♭|(?i:sharp|flat))?(.*)$")

SCORE_FIELDS = (
    "energy",
    "danceability",
    "valence",
    "acousticness",
    "instrumentalness",
    "liveness",
    "speechiness",
)


class ValueShape(Enum):
    NUMBER = "number"
    NUMERIC_TEXT = "numeric_text"
    TEXT = "text"
    MISSING = "missing"


@dataclass(frozen=True)
class Decoded:
    """A raw value tagged with its shape."""
    shape: ValueShape
    number: float | None = None
    text: str | None = None


_MISSING = Decoded(ValueShape.MISSING)


def decode(value: Any) -> Decoded:
    """
    Classify a raw upstream value.

    Booleans are text ("true"/"false"), not numbers. NaN and infinities
    count as missing.
    """
    if value is None:
        return _MISSING
    if isinstance(value, bool):
        return Decoded(ValueShape.TEXT, text="true" if value else "false")
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return _MISSING
        return Decoded(ValueShape.NUMBER, number=number) if math.isfinite(number) else _MISSING
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return _MISSING
        try:
            number = float(text)
        except ValueError:
            return Decoded(ValueShape.TEXT, text=text)
        if not math.isfinite(number):
            return Decoded(ValueShape.TEXT, text=text)
        return Decoded(ValueShape.NUMERIC_TEXT, number=number, text=text)
    return _MISSING


def pitch_class_name(index: int) -> str:
    """Display name for a pitch-class index, "Unknown" outside 0..11."""
    if 0 <= index < len(PITCH_CLASSES):
        return PITCH_CLASSES[index]
    return UNKNOWN


def _key_from_text(text: str) -> str:
    match = _KEY_NAME.match(text.strip())
    if not match:
        return UNKNOWN

    letter, accidental, rest = match.groups()
    rest = rest.strip().lower()
    # Allow "C major", "Dbm", "C-sharp", "C♯/D♭"; reject words like "Energy"
    if rest and rest not in _MODE_WORDS and rest[0] not in "/:(":
        return UNKNOWN

    index = _NATURAL_INDEX[letter.upper()]
    if accidental:
        token = accidental.lower()
        if token in _SHARP_TOKENS:
            index += 1
        elif token in _FLAT_TOKENS:
            index -= 1
    return PITCH_CLASSES[index % 12]


def decode_key(value: Any) -> str:
    """
    Canonical key name from a pitch-class index or a display string.

    Examples:
        decode_key(2)        # "D"
        decode_key("1")      # "C♯/D♭"
        decode_key("Db")     # "C♯/D♭"
        decode_key(-1)       # "Unknown" (no key detected)
    """
    decoded = decode(value)
    if decoded.shape in (ValueShape.NUMBER, ValueShape.NUMERIC_TEXT):
        number = decoded.number
        if number is not None and number.is_integer():
            return pitch_class_name(int(number))
        return UNKNOWN
    if decoded.shape is ValueShape.TEXT and decoded.text is not None:
        return _key_from_text(decoded.text)
    return UNKNOWN


def decode_mode(value: Any) -> str:
    """"Major" when the mode flag is 1 (or the word major), else "Minor"."""
    decoded = decode(value)
    if decoded.shape in (ValueShape.NUMBER, ValueShape.NUMERIC_TEXT):
        return "Major" if decoded.number == 1 else "Minor"
    if decoded.shape is ValueShape.TEXT and decoded.text is not None:
        return "Major" if decoded.text.lower() in ("major", "maj") else "Minor"
    return "Minor"


def _number(value: Any, default: float = 0.0) -> float:
    decoded = decode(value)
    return decoded.number if decoded.number is not None else default


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _score(value: Any) -> float:
    return _clamp(_number(value), 0.0, 1.0)


def _optional_text(value: Any) -> str | None:
    decoded = decode(value)
    if decoded.shape in (ValueShape.TEXT, ValueShape.NUMERIC_TEXT):
        return decoded.text
    if decoded.shape is ValueShape.NUMBER and decoded.number is not None:
        number = decoded.number
        return str(int(number)) if number.is_integer() else str(number)
    return None


def _text(value: Any, default: str = UNKNOWN) -> str:
    text = _optional_text(value)
    return text if text is not None else default


def _flag(value: Any) -> bool:
    decoded = decode(value)
    if decoded.shape is ValueShape.TEXT and decoded.text is not None:
        return decoded.text.lower() in ("true", "yes")
    if decoded.number is not None:
        return decoded.number != 0
    return False


def _time_signature(value: Any) -> int:
    number = _number(value, DEFAULT_TIME_SIGNATURE)
    beats = int(round(number))
    return beats if beats > 0 else DEFAULT_TIME_SIGNATURE


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def unwrap_features(raw_features: Any) -> Mapping[str, Any]:
    """
    Locate the feature object inside a features payload.

    Handles a bare object, {"audio_features": {...}} (proxy shape) and
    {"audio_features": [{...}]} (batch endpoint shape).
    """
    raw = _mapping(raw_features)
    inner = raw.get("audio_features")
    if isinstance(inner, Mapping):
        return inner
    if isinstance(inner, list):
        for item in inner:
            if isinstance(item, Mapping):
                return item
        return {}
    return raw


def _artists(raw_track: Mapping[str, Any]) -> tuple[str, ...]:
    raw_artists = raw_track.get("artists")
    if raw_artists is None:
        raw_artists = raw_track.get("artist")
    if isinstance(raw_artists, (str, Mapping)):
        raw_artists = [raw_artists]
    if not isinstance(raw_artists, list):
        raw_artists = []

    names = []
    for item in raw_artists:
        name = _optional_text(item.get("name")) if isinstance(item, Mapping) else _optional_text(item)
        if name:
            names.append(name)

    # Downstream formatting assumes at least one artist
    return tuple(names) if names else (UNKNOWN_ARTIST,)


def _image_area(image: Mapping[str, Any]) -> float:
    return _number(image.get("width")) * _number(image.get("height"))


def _artwork_url(album: Mapping[str, Any], raw_track: Mapping[str, Any]) -> str | None:
    images = album.get("images")
    if not isinstance(images, list) or not images:
        images = raw_track.get("images")
    if not isinstance(images, list):
        return None

    candidates = [
        image for image in images
        if isinstance(image, Mapping) and _optional_text(image.get("url"))
    ]
    if not candidates:
        return None
    best = max(candidates, key=_image_area)
    return _optional_text(best.get("url"))


class FeatureNormalizer:
    """
    Builds AnalyzedTrack records from raw track and feature payloads.

    Pure and total: any input that is not a mapping is read as empty, and
    every field has a documented default, so normalize() never raises on
    payload content.
    """

    def normalize(
        self,
        raw_track: Any,
        raw_features: Any,
        track_id: str | None = None
    ) -> AnalyzedTrack:
        """
        Args:
            raw_track: Track metadata payload.
            raw_features: Audio features payload (any supported wrapping).
            track_id: Resolved id, used when the payloads carry none.

        Returns:
            A fully populated AnalyzedTrack.
        """
        track = _mapping(raw_track)
        features = unwrap_features(raw_features)
        album = _mapping(track.get("album"))
        album_name = track.get("album") if isinstance(track.get("album"), str) else album.get("name")

        resolved_id = (
            _optional_text(track.get("id"))
            or _optional_text(features.get("id"))
            or track_id
            or UNKNOWN
        )

        scores = {name: _score(features.get(name)) for name in SCORE_FIELDS}

        record = AnalyzedTrack(
            track_id=resolved_id,
            title=_text(track.get("name", track.get("title"))),
            artists=_artists(track),
            album=_text(album_name),
            artwork_url=_artwork_url(album, track),
            preview_url=_optional_text(track.get("preview_url")),
            release_date=_optional_text(album.get("release_date", track.get("release_date"))),
            duration_ms=max(0, int(round(_number(track.get("duration_ms"))))),
            popularity=int(_clamp(round(_number(track.get("popularity"))), 0, 100)),
            explicit=_flag(track.get("explicit")),
            key=decode_key(features.get("key")),
            mode=decode_mode(features.get("mode")),
            tempo=max(0.0, _number(features.get("tempo"))),
            time_signature=_time_signature(features.get("time_signature")),
            loudness=_number(features.get("loudness")),
            **scores,
        )
        logger.debug(
            f"Normalized {record.track_id}: {record.key_signature}, {record.tempo:.1f} BPM"
        )
        return record


_default_normalizer = FeatureNormalizer()


def normalize(raw_track: Any, raw_features: Any, track_id: str | None = None) -> AnalyzedTrack:
    """Module-level shortcut for FeatureNormalizer().normalize()."""
    return _default_normalizer.normalize(raw_track, raw_features, track_id)
