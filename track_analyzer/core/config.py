"""
Configuration management for track-analyzer.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml, with environment
variable overrides for the values users typically keep out of files.

The configuration file contains:
    - OAuth application settings (client id, redirect URI, scope, endpoints)
    - Web API endpoints, including an optional audio-features proxy
    - Analysis behaviour switches
    - State and export directories

Configuration File Location:
    config.yaml in the current working directory, or an explicit path.
    The file is optional when the client id comes from the environment.

Environment Variables (loaded from .env when present):
    TRACK_ANALYZER_CLIENT_ID      overrides auth.client_id
    TRACK_ANALYZER_REDIRECT_URI   overrides auth.redirect_uri
    TRACK_ANALYZER_STATE_DIR      overrides output.state_directory

Example config.yaml:
    auth:
      client_id: "your_client_id_here"
      redirect_uri: "http://127.0.0.1:8888/callback"

    api:
      features_base_url: "https://features-proxy.example.com"
      features_path: "/tracks/audio_features?track_id={id}"
      features_headers:
        X-Api-Key: "..."

    output:
      state_directory: "~/.track-analyzer"
      export_directory: "~/Desktop"
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from track_analyzer.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

ENV_CLIENT_ID = "TRACK_ANALYZER_CLIENT_ID"
ENV_REDIRECT_URI = "TRACK_ANALYZER_REDIRECT_URI"
ENV_STATE_DIR = "TRACK_ANALYZER_STATE_DIR"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_SCOPE = "user-read-private"
DEFAULT_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
DEFAULT_TOKEN_URL = "https://accounts.spotify.com/api/token"
DEFAULT_API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_FEATURES_PATH = "/audio-features/{id}"
DEFAULT_WEB_URL = "https://open.spotify.com"
DEFAULT_STATE_DIRECTORY = "~/.track-analyzer"


@dataclass(frozen=True)
class AuthConfig:
    """
    OAuth (PKCE) application settings.

    No client secret: the PKCE verifier authenticates the code exchange.

    Attributes:
        client_id: Application client id from the provider dashboard.
        redirect_uri: Callback URL registered for the application.
                      A loopback address lets the CLI receive the callback
                      itself; anything else falls back to pasting the URL.
        scope: Space-separated permission scopes.
        authorize_url: Consent endpoint.
        token_url: Code exchange endpoint.
    """
    client_id: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scope: str = DEFAULT_SCOPE
    authorize_url: str = DEFAULT_AUTHORIZE_URL
    token_url: str = DEFAULT_TOKEN_URL


@dataclass(frozen=True)
class ApiConfig:
    """
    Web API endpoints.

    Attributes:
        base_url: Base URL for track metadata (`{base_url}/tracks/{id}`).
        features_base_url: Base URL for audio features. Same as base_url
                           unless a proxy is configured.
        features_path: Path template appended to features_base_url.
                       `{id}` is replaced with the track id.
        features_headers: Extra headers sent with the features request only.
        web_url: Public web player host used to build track links.
        timeout: Total timeout in seconds for a single request.
    """
    base_url: str = DEFAULT_API_BASE_URL
    features_base_url: str = DEFAULT_API_BASE_URL
    features_path: str = DEFAULT_FEATURES_PATH
    features_headers: dict[str, str] = field(default_factory=dict)
    web_url: str = DEFAULT_WEB_URL
    timeout: float = 15.0


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Analysis behaviour switches.

    Attributes:
        placeholder_metadata: When True, a rejected or untitled metadata
                              response is replaced by placeholder metadata
                              instead of failing the analysis. Audio features
                              and auth failures are never masked.
    """
    placeholder_metadata: bool = False


@dataclass(frozen=True)
class OutputConfig:
    """
    Local directories.

    Attributes:
        state_directory: Holds session.json (token + pending verifier)
                         and the logs/ subdirectory.
        export_directory: Default destination for exported info files.
    """
    state_directory: Path
    export_directory: Path

    @property
    def session_file(self) -> Path:
        return self.state_directory / "session.json"

    @property
    def logs_directory(self) -> Path:
        return self.state_directory / "logs"


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Session stored in: {config.output.session_file}")
    """
    auth: AuthConfig
    api: ApiConfig
    analysis: AnalysisConfig
    output: OutputConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml and the environment.

    Args:
        config_path: Optional explicit path to config file. When given, the
                     file must exist. When None, CWD/config.yaml is used if
                     present, otherwise only defaults and environment
                     variables apply.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the file is unreadable, has invalid YAML syntax,
                     or any field has an invalid value (including a missing
                     client id after environment overrides).
    """
    load_dotenv()

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        raw_config = _read_yaml(config_path)
    else:
        default_path = Path.cwd() / CONFIG_FILENAME
        if default_path.exists():
            raw_config = _read_yaml(default_path)

    for section in ("auth", "api", "analysis", "output"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    return Config(
        auth=_parse_auth_config(raw_config.get("auth") or {}),
        api=_parse_api_config(raw_config.get("api") or {}),
        analysis=_parse_analysis_config(raw_config.get("analysis") or {}),
        output=_parse_output_config(raw_config.get("output") or {}),
    )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file parses to None
    if raw_config is None:
        return {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )
    return raw_config


def _string_field(section: dict[str, Any], name: str, field_path: str, default: str) -> str:
    value = section.get(name)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{field_path}' must be a non-empty string",
            details={"field": field_path}
        )
    return value.strip()


def _url_field(section: dict[str, Any], name: str, field_path: str, default: str) -> str:
    value = _string_field(section, name, field_path, default)
    if not value.startswith(("http://", "https://")):
        raise ConfigError(
            f"'{field_path}' must be an http(s) URL",
            details={"field": field_path, "value": value}
        )
    return value.rstrip("/")


def _parse_auth_config(auth_section: dict[str, Any]) -> AuthConfig:
    """
    Parse the auth section, applying environment overrides.

    Raises:
        ConfigError: If no client id is available from either source.
    """
    client_id = os.environ.get(ENV_CLIENT_ID) or auth_section.get("client_id", "")
    if not isinstance(client_id, str) or not client_id.strip():
        raise ConfigError(
            f"'auth.client_id' must be a non-empty string "
            f"(or set {ENV_CLIENT_ID})",
            details={"field": "auth.client_id"}
        )

    redirect_uri = os.environ.get(ENV_REDIRECT_URI) or _string_field(
        auth_section, "redirect_uri", "auth.redirect_uri", DEFAULT_REDIRECT_URI
    )
    if not redirect_uri.startswith(("http://", "https://")):
        raise ConfigError(
            "'auth.redirect_uri' must be an http(s) URL",
            details={"field": "auth.redirect_uri", "value": redirect_uri}
        )

    return AuthConfig(
        client_id=client_id.strip(),
        redirect_uri=redirect_uri,
        scope=_string_field(auth_section, "scope", "auth.scope", DEFAULT_SCOPE),
        authorize_url=_url_field(
            auth_section, "authorize_url", "auth.authorize_url", DEFAULT_AUTHORIZE_URL
        ),
        token_url=_url_field(
            auth_section, "token_url", "auth.token_url", DEFAULT_TOKEN_URL
        ),
    )


def _parse_api_config(api_section: dict[str, Any]) -> ApiConfig:
    """
    Parse the api section.

    features_base_url defaults to base_url so the plain Web API works
    without any proxy settings.
    """
    base_url = _url_field(api_section, "base_url", "api.base_url", DEFAULT_API_BASE_URL)
    features_base_url = _url_field(
        api_section, "features_base_url", "api.features_base_url", base_url
    )

    features_path = _string_field(
        api_section, "features_path", "api.features_path", DEFAULT_FEATURES_PATH
    )
    if "{id}" not in features_path:
        raise ConfigError(
            "'api.features_path' must contain the '{id}' placeholder",
            details={"field": "api.features_path", "value": features_path}
        )
    if not features_path.startswith("/"):
        features_path = "/" + features_path

    raw_headers = api_section.get("features_headers") or {}
    if not isinstance(raw_headers, dict):
        raise ConfigError(
            "'api.features_headers' must be a dictionary",
            details={"field": "api.features_headers"}
        )
    features_headers = {str(k): str(v) for k, v in raw_headers.items()}

    raw_timeout = api_section.get("timeout", 15)
    if isinstance(raw_timeout, bool) or not isinstance(raw_timeout, (int, float)) or raw_timeout <= 0:
        raise ConfigError(
            "'api.timeout' must be a positive number",
            details={"field": "api.timeout", "value": raw_timeout}
        )

    return ApiConfig(
        base_url=base_url,
        features_base_url=features_base_url,
        features_path=features_path,
        features_headers=features_headers,
        web_url=_url_field(api_section, "web_url", "api.web_url", DEFAULT_WEB_URL),
        timeout=float(raw_timeout),
    )


def _parse_analysis_config(analysis_section: dict[str, Any]) -> AnalysisConfig:
    placeholder = analysis_section.get("placeholder_metadata", False)
    if not isinstance(placeholder, bool):
        raise ConfigError(
            "'analysis.placeholder_metadata' must be true or false",
            details={"field": "analysis.placeholder_metadata"}
        )
    return AnalysisConfig(placeholder_metadata=placeholder)


def _parse_output_config(output_section: dict[str, Any]) -> OutputConfig:
    """
    Parse the output section.

    Expands ~ and makes paths absolute. Does NOT create the directories
    (the session store and logger do that on first write).
    """
    state_raw = os.environ.get(ENV_STATE_DIR) or _string_field(
        output_section, "state_directory", "output.state_directory", DEFAULT_STATE_DIRECTORY
    )
    export_raw = _string_field(
        output_section, "export_directory", "output.export_directory", "."
    )
    return OutputConfig(
        state_directory=Path(state_raw).expanduser().resolve(),
        export_directory=Path(export_raw).expanduser().resolve(),
    )
