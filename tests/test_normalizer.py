"""Test payload normalization"""

import json

import pytest

from track_analyzer.analysis.normalizer import (
    PITCH_CLASSES,
    FeatureNormalizer,
    ValueShape,
    decode,
    decode_key,
    decode_mode,
    normalize,
    unwrap_features,
)


class TestDecode:
    """Test the per-value shape tagging"""

    def test_number(self):
        """Test ints and floats are numbers"""
        assert decode(3).shape is ValueShape.NUMBER
        assert decode(0.5).number == 0.5

    def test_numeric_text(self):
        """Test strings holding numbers keep both forms"""
        decoded = decode(" 120.5 ")

        assert decoded.shape is ValueShape.NUMERIC_TEXT
        assert decoded.number == 120.5
        assert decoded.text == "120.5"

    def test_text_and_missing(self):
        """Test plain text, blanks and None"""
        assert decode("C#").shape is ValueShape.TEXT
        assert decode("").shape is ValueShape.MISSING
        assert decode(None).shape is ValueShape.MISSING
        assert decode([1, 2]).shape is ValueShape.MISSING

    def test_booleans_are_not_numbers(self):
        """Test True is not read as 1"""
        decoded = decode(True)

        assert decoded.shape is ValueShape.TEXT
        assert decoded.number is None

    def test_non_finite_numbers_are_missing(self):
        """Test NaN and infinity never reach a field"""
        assert decode(float("nan")).shape is ValueShape.MISSING
        assert decode(float("inf")).shape is ValueShape.MISSING

    def test_integer_too_large_for_float_is_missing(self):
        """Test a JSON integer beyond float range decodes as missing"""
        assert decode(10 ** 400).shape is ValueShape.MISSING


class TestKeyAndMode:
    """Test key and mode decoding"""

    @pytest.mark.parametrize("raw, expected", [
        (0, "C"),
        (1, "C♯/D♭"),
        (11, "B"),
        ("2", "D"),
        ("C#", "C♯/D♭"),
        ("Db", "C♯/D♭"),
        ("c sharp", "C♯/D♭"),
        ("C♯/D♭", "C♯/D♭"),
        ("Bb", "A♯/B♭"),
        ("A minor", "A"),
        ("F#m", "F♯/G♭"),
        ("Cb", "B"),
        ("C-sharp", "C♯/D♭"),
        ("D-flat", "C♯/D♭"),
        ("E - minor", "E"),
    ])
    def test_key_names(self, raw, expected):
        """Test indices and display strings map to the pitch-class table"""
        assert decode_key(raw) == expected

    @pytest.mark.parametrize("raw", [-1, 12, 2.5, "H", "Energy", "C-dur", "C--sharp", None, "", True])
    def test_unknown_keys(self, raw):
        """Test out-of-range and unrecognized keys"""
        assert decode_key(raw) == "Unknown"

    def test_pitch_class_table(self):
        """Test the table has twelve entries in order"""
        assert len(PITCH_CLASSES) == 12
        assert PITCH_CLASSES[0] == "C"
        assert PITCH_CLASSES[9] == "A"

    @pytest.mark.parametrize("raw, expected", [
        (1, "Major"),
        ("1", "Major"),
        ("major", "Major"),
        (0, "Minor"),
        ("0", "Minor"),
        (None, "Minor"),
        (True, "Minor"),
        (2, "Minor"),
    ])
    def test_mode(self, raw, expected):
        """Test mode flag decoding"""
        assert decode_mode(raw) == expected


class TestUnwrapFeatures:
    """Test locating the feature object"""

    def test_bare_object(self):
        assert unwrap_features({"tempo": 100}) == {"tempo": 100}

    def test_wrapped_object(self):
        assert unwrap_features({"audio_features": {"tempo": 100}}) == {"tempo": 100}

    def test_wrapped_list(self):
        assert unwrap_features({"audio_features": [None, {"tempo": 100}]}) == {"tempo": 100}

    def test_empty_list_and_non_mapping(self):
        assert unwrap_features({"audio_features": []}) == {}
        assert unwrap_features("nonsense") == {}


class TestNormalize:
    """Test building AnalyzedTrack records"""

    def test_full_payloads(self, sample_track_payload, sample_features_payload, track_id):
        """Test a complete, well-formed response pair"""
        track = normalize(sample_track_payload, sample_features_payload)

        assert track.track_id == track_id
        assert track.title == "Test Song"
        assert track.artists == ("Test Artist", "Featured Artist")
        assert track.primary_artist == "Test Artist"
        assert track.all_artists == "Test Artist, Featured Artist"
        assert track.album == "Test Album"
        assert track.artwork_url == "https://img.example.com/large.jpg"
        assert track.release_date == "2023-01-01"
        assert track.duration_ms == 210000
        assert track.duration_str == "3:30"
        assert track.popularity == 75
        assert track.explicit is False
        assert track.key == "D"
        assert track.mode == "Major"
        assert track.key_signature == "D Major"
        assert track.tempo == 120.5
        assert track.time_signature == 4
        assert track.loudness == -5.3
        assert track.energy == 0.85

    def test_empty_payloads_give_defaults(self):
        """Test every field falls back to its documented default"""
        track = normalize({}, {}, track_id="4uLU6hMCjMI75M1A2tKUQC")

        assert track.track_id == "4uLU6hMCjMI75M1A2tKUQC"
        assert track.title == "Unknown"
        assert track.artists == ("Unknown Artist",)
        assert track.album == "Unknown"
        assert track.artwork_url is None
        assert track.preview_url is None
        assert track.release_date is None
        assert track.duration_ms == 0
        assert track.popularity == 0
        assert track.key == "Unknown"
        assert track.mode == "Minor"
        assert track.tempo == 0.0
        assert track.time_signature == 4
        assert track.loudness == 0.0
        for name in ("energy", "danceability", "valence", "acousticness",
                     "instrumentalness", "liveness", "speechiness"):
            assert getattr(track, name) == 0.0

    def test_non_mapping_payloads(self):
        """Test garbage input is read as empty"""
        track = normalize(None, ["not", "a", "dict"])

        assert track.track_id == "Unknown"
        assert track.title == "Unknown"

    def test_string_numbers(self):
        """Test numeric strings are parsed"""
        track = normalize({}, {"tempo": "120.5", "mode": 1, "key": 2})

        assert track.tempo == 120.5
        assert track.mode == "Major"
        assert track.key == "D"

    def test_clamping(self):
        """Test out-of-range values are clamped"""
        track = normalize(
            {"duration_ms": -500, "popularity": 250},
            {"energy": 1.2, "valence": -0.4, "tempo": -10, "time_signature": 0},
        )

        assert track.energy == 1.0
        assert track.valence == 0.0
        assert track.tempo == 0.0
        assert track.duration_ms == 0
        assert track.popularity == 100
        assert track.time_signature == 4

    def test_unparsable_values_use_defaults(self):
        """Test text where a number is expected"""
        track = normalize({"duration_ms": "long"}, {"tempo": "fast", "energy": "high"})

        assert track.tempo == 0.0
        assert track.energy == 0.0
        assert track.duration_ms == 0

    def test_duration_str_past_an_hour(self):
        """Test long tracks show hours"""
        assert normalize({"duration_ms": 3725000}, {}).duration_str == "1:02:05"

    def test_huge_integer_tempo(self):
        """Test an integer tempo too large for a float falls back to the default"""
        features = json.loads('{"tempo": 1' + "0" * 400 + ', "energy": 0.5}')

        track = normalize({}, features)

        assert track.tempo == 0.0
        assert track.energy == 0.5

    def test_blank_optional_fields_are_none(self):
        """Test blank URLs and dates are None, never empty strings"""
        track = normalize(
            {"preview_url": "", "album": {"release_date": "   ", "images": []}},
            {},
        )

        assert track.preview_url is None
        assert track.release_date is None
        assert track.artwork_url is None

    def test_artists_as_strings_and_blanks(self):
        """Test string artists and blank names"""
        track = normalize({"artists": ["A", "", {"name": "  "}, {"name": "B"}]}, {})

        assert track.artists == ("A", "B")

    def test_empty_artist_list(self):
        """Test the placeholder artist"""
        assert normalize({"artists": []}, {}).artists == ("Unknown Artist",)

    def test_wrapped_features(self):
        """Test the proxy's wrapped features shape"""
        track = normalize({}, {"audio_features": {"key": "F#", "mode": "0", "tempo": 90}})

        assert track.key == "F♯/G♭"
        assert track.mode == "Minor"
        assert track.tempo == 90.0

    def test_payload_id_wins_over_argument(self, sample_track_payload):
        """Test the id from the payload is preferred"""
        track = FeatureNormalizer().normalize(sample_track_payload, {}, track_id="other")

        assert track.track_id == sample_track_payload["id"]

    def test_explicit_flag(self):
        """Test explicit parsing from bools and text"""
        assert normalize({"explicit": True}, {}).explicit is True
        assert normalize({"explicit": "true"}, {}).explicit is True
        assert normalize({"explicit": "no"}, {}).explicit is False
