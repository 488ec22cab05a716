"""
track-analyzer: Musical attributes and metadata for a single track.

Paste a link to a track and get its tempo, key, mode and characteristic
scores (energy, danceability, mood...) together with title, artists,
album and artwork, optionally written to a plain-text export file.

Architecture:
    core/       Configuration, logging, session storage, error hierarchy
    spotify/    Link parsing, PKCE login, callback receiver, API client
    analysis/   Normalization, orchestration, descriptors, export
    cli.py      Command-line entry point (track-analyzer)

Flow:
    link -> LinkResolver -> AnalysisOrchestrator
         -> TrackDataClient (track + features, concurrently)
         -> FeatureNormalizer -> AnalyzedTrack
"""

__version__ = "0.1.0"
