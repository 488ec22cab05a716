"""
Core module for track-analyzer.

This module provides the foundational components used throughout the application:
    - exceptions: Classified error hierarchy
    - config: Configuration loading and validation
    - session_store: Durable storage for the login session
    - logger: Logging system with console and file outputs

Usage:
    from track_analyzer.core import (
        Config, load_config,
        FileSessionStore,
        setup_logging, get_logger,
        TrackAnalyzerError, AnalysisError, FailureKind
    )
"""

from track_analyzer.core.config import (
    AnalysisConfig,
    ApiConfig,
    AuthConfig,
    Config,
    OutputConfig,
    load_config,
)
from track_analyzer.core.exceptions import (
    AnalysisError,
    AnalysisSupersededError,
    AuthenticationRequiredError,
    ConfigError,
    ExportError,
    FailureKind,
    InvalidLinkError,
    SessionExpiredError,
    SessionStoreError,
    TrackAnalyzerError,
    TransportError,
    UnauthorizedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from track_analyzer.core.logger import (
    get_logger,
    mask_secret,
    setup_logging,
    shutdown_logging,
)
from track_analyzer.core.session_store import (
    ACCESS_TOKEN_KEY,
    CODE_VERIFIER_KEY,
    FileSessionStore,
    MemorySessionStore,
    SessionStore,
)

__all__ = [
    # Config
    "Config",
    "AuthConfig",
    "ApiConfig",
    "AnalysisConfig",
    "OutputConfig",
    "load_config",
    # Exceptions
    "TrackAnalyzerError",
    "ConfigError",
    "SessionStoreError",
    "ExportError",
    "AnalysisError",
    "FailureKind",
    "InvalidLinkError",
    "AuthenticationRequiredError",
    "SessionExpiredError",
    "AnalysisSupersededError",
    "UpstreamUnavailableError",
    "UnauthorizedError",
    "UpstreamRejectedError",
    "TransportError",
    # Logger
    "setup_logging",
    "get_logger",
    "mask_secret",
    "shutdown_logging",
    # Session store
    "SessionStore",
    "MemorySessionStore",
    "FileSessionStore",
    "ACCESS_TOKEN_KEY",
    "CODE_VERIFIER_KEY",
]
