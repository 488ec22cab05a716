"""
Analysis layer for track-analyzer.

    - normalizer: Raw payloads -> canonical AnalyzedTrack
    - orchestrator: Link -> credential -> concurrent fetch -> normalize
    - descriptors: Human-readable labels for scores and durations
    - export: Plain-text export files

Usage:
    from track_analyzer.analysis import AnalysisOrchestrator, write_export
"""

from track_analyzer.analysis.descriptors import (
    describe_danceability,
    describe_energy,
    describe_mood,
    format_duration,
    summarize,
)
from track_analyzer.analysis.export import export_filename, render_export, write_export
from track_analyzer.analysis.normalizer import (
    PITCH_CLASSES,
    FeatureNormalizer,
    decode,
    decode_key,
    decode_mode,
    normalize,
)
from track_analyzer.analysis.orchestrator import AnalysisOrchestrator, placeholder_track

__all__ = [
    # Normalizer
    "FeatureNormalizer",
    "PITCH_CLASSES",
    "decode",
    "decode_key",
    "decode_mode",
    "normalize",
    # Orchestrator
    "AnalysisOrchestrator",
    "placeholder_track",
    # Descriptors
    "describe_energy",
    "describe_danceability",
    "describe_mood",
    "format_duration",
    "summarize",
    # Export
    "export_filename",
    "render_export",
    "write_export",
]
