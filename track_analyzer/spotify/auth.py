"""
OAuth2 PKCE authentication for the Web API.

This module implements the Authorization Code flow with Proof Key for
Code Exchange. The application is a public client: there is no client
secret, the code exchange is bound to a random verifier generated here.

The flow is split in two phases because the consent step happens outside
the process (the browser navigates away and comes back):

1. begin_login(): create and persist a verifier, return the consent URL
2. complete_login(callback): exchange the returned code (or adopt a token
   delivered directly) and persist the resulting credential

State machine:
    UNAUTHENTICATED --begin_login--> AWAITING_CONSENT
    AWAITING_CONSENT --complete_login ok--> AUTHENTICATED
    AWAITING_CONSENT --complete_login failed--> UNAUTHENTICATED
    AUTHENTICATED --invalidate/logout--> UNAUTHENTICATED

Storage:
    All persistent state lives in an injected SessionStore. The verifier is
    erased as soon as a completion attempt reads it, so an authorization
    code can be exchanged at most once from this side.
"""

import asyncio
import base64
import hashlib
import json
import secrets
import string
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Mapping
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import aiohttp

from track_analyzer.core.config import AuthConfig
from track_analyzer.core.exceptions import (
    AuthenticationRequiredError,
    SessionStoreError,
    TransportError,
)
from track_analyzer.core.logger import get_logger, mask_secret
from track_analyzer.core.session_store import (
    ACCESS_TOKEN_KEY,
    CODE_VERIFIER_KEY,
    SessionStore,
)
from track_analyzer.spotify.models import Credential

logger = get_logger(__name__)


# RFC 7636 unreserved characters
UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128
DEFAULT_VERIFIER_LENGTH = 64

# Query/fragment parameters that must not stay visible after a callback
CALLBACK_PARAMS = frozenset({
    "code", "state", "error", "error_description",
    "access_token", "token_type", "expires_in", "scope",
})


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_CONSENT = "awaiting_consent"
    AUTHENTICATED = "authenticated"


def generate_verifier(length: int = DEFAULT_VERIFIER_LENGTH) -> str:
    """
    Generate a PKCE code verifier.

    Args:
        length: Number of characters, 43 to 128.

    Returns:
        Cryptographically random string over the unreserved character set.

    Raises:
        ValueError: If length is outside the allowed range.
    """
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"Verifier length must be between {MIN_VERIFIER_LENGTH} "
            f"and {MAX_VERIFIER_LENGTH}, got {length}"
        )
    return "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))


def derive_challenge(verifier: str) -> str:
    """S256 challenge: unpadded base64url of the verifier's SHA-256 digest."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def parse_callback(callback: Mapping[str, Any] | str) -> dict[str, str]:
    """
    Normalize callback parameters to a flat dict.

    Accepts a mapping (values may be lists, as from parse_qs), a raw query
    string ("code=...&state=..."), or a full redirect URL. For URLs both the
    query and the fragment are read, since directly delivered tokens travel
    in the fragment.
    """
    if isinstance(callback, Mapping):
        params: dict[str, str] = {}
        for key, value in callback.items():
            if isinstance(value, (list, tuple)):
                if not value:
                    continue
                value = value[0]
            if value is not None:
                params[str(key)] = str(value)
        return params

    text = callback.strip()
    parsed = urlparse(text)
    if parsed.scheme and parsed.netloc:
        raw_parts = [parsed.query, parsed.fragment]
    else:
        raw_parts = [text.lstrip("?#")]

    params = {}
    for raw in raw_parts:
        for key, values in parse_qs(raw).items():
            if values and key not in params:
                params[key] = values[0]
    return params


def strip_callback_params(url: str) -> str:
    """
    Remove authorization parameters from a redirect URL.

    Example:
        strip_callback_params("http://127.0.0.1:8888/callback?code=abc&x=1")
        # "http://127.0.0.1:8888/callback?x=1"
    """
    parsed = urlparse(url)

    def _clean(raw: str) -> str:
        kept = [
            (key, value)
            for key, values in parse_qs(raw, keep_blank_values=True).items()
            if key not in CALLBACK_PARAMS
            for value in values
        ]
        return urlencode(kept)

    return urlunparse(parsed._replace(query=_clean(parsed.query), fragment=_clean(parsed.fragment)))


class PKCEAuthenticator:
    """
    PKCE login flow and owner of the session credential.

    The authenticator is the only component that writes the credential.
    Every write goes to the SessionStore first and is adopted in memory
    only once the store call has returned.

    Attributes:
        config: OAuth application settings.
        state: Current AuthState.

    Example:
        auth = PKCEAuthenticator(config.auth, FileSessionStore(path))
        if auth.restore_session() is None:
            url = auth.begin_login()
            webbrowser.open(url)
            ...
            await auth.complete_login(callback_url)
    """

    def __init__(
        self,
        config: AuthConfig,
        store: SessionStore,
        http_session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0
    ) -> None:
        """
        Args:
            config: OAuth application settings.
            store: Durable storage for the token and pending verifier.
            http_session: Session used for the token exchange. When None a
                          short-lived session is opened per exchange.
            timeout: Total timeout for the token exchange, in seconds.
        """
        self.config = config
        self._store = store
        self._http_session = http_session
        self._timeout = timeout
        self._credential: Credential | None = None
        self._state = AuthState.UNAUTHENTICATED

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def has_pending_login(self) -> bool:
        """True while a verifier from begin_login() is waiting to be used."""
        return self._store.get(CODE_VERIFIER_KEY) is not None

    # =========================================================================
    # Phase 1: consent redirect
    # =========================================================================

    def begin_login(self) -> str:
        """
        Start a login and return the URL the user must open.

        A fresh verifier replaces any earlier pending one, so only the most
        recent consent page can complete.

        Returns:
            Authorization URL carrying client_id, response_type=code,
            redirect_uri, scope, code_challenge_method=S256 and
            code_challenge.
        """
        verifier = generate_verifier()
        self._store.set(CODE_VERIFIER_KEY, verifier)

        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "scope": self.config.scope,
            "code_challenge_method": "S256",
            "code_challenge": derive_challenge(verifier),
        }
        self._state = AuthState.AWAITING_CONSENT
        logger.debug(f"Login started, verifier {mask_secret(verifier)}")
        return f"{self.config.authorize_url}?{urlencode(params)}"

    # =========================================================================
    # Phase 2: callback handling
    # =========================================================================

    async def complete_login(self, callback: Mapping[str, Any] | str) -> Credential:
        """
        Finish a login from the parameters of the redirect back.

        Args:
            callback: Redirect URL, raw query string, or parameter mapping.

        Returns:
            The adopted credential.

        Raises:
            AuthenticationRequiredError: Consent denied, no pending login
                (including a replayed code), exchange rejected, or a
                callback carrying neither code nor token.
            TransportError: The token endpoint could not be reached.
            SessionStoreError: The credential could not be persisted.

        Behavior:
            - access_token present: adopted directly
            - error present: login fails with the provider's error
            - code present: exchanged with the stored verifier, which is
              erased before the request is sent
        """
        params = parse_callback(callback)

        if params.get("access_token"):
            self._store.clear(CODE_VERIFIER_KEY)
            credential = Credential.from_token_response(params)
            self._adopt(credential)
            logger.info("Login completed with a directly delivered token")
            return credential

        if "error" in params:
            self._fail()
            error = params["error"]
            raise AuthenticationRequiredError(
                f"Authorization was not granted: {error}",
                details={
                    "error": error,
                    "error_description": params.get("error_description"),
                }
            )

        code = params.get("code")
        if not code:
            self._fail()
            raise AuthenticationRequiredError(
                "Callback carries neither an authorization code nor a token",
                details={"received": sorted(params)}
            )

        verifier = self._store.get(CODE_VERIFIER_KEY)
        # Single use: whatever happens next, this verifier is spent
        self._store.clear(CODE_VERIFIER_KEY)
        if not verifier:
            self._fail()
            raise AuthenticationRequiredError(
                "No login is pending for this authorization code; "
                "it was already used or login was never started",
                details={"code": mask_secret(code)}
            )

        try:
            payload = await self._exchange_code(code, verifier)
        except (AuthenticationRequiredError, TransportError):
            self._fail()
            raise

        credential = Credential.from_token_response(payload, verifier=verifier)
        self._adopt(credential)
        logger.info("Login completed")
        return credential

    async def _exchange_code(self, code: str, verifier: str) -> dict[str, Any]:
        """
        POST the authorization code and verifier to the token endpoint.

        Returns:
            The decoded token response, guaranteed to contain access_token.
        """
        data = {
            "client_id": self.config.client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "code_verifier": verifier,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            async with self._session_scope() as session:
                async with session.post(
                    self.config.token_url, data=data, headers=headers
                ) as response:
                    status = response.status
                    body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Token endpoint unreachable: {e}",
                details={"url": self.config.token_url, "original_error": str(e)}
            ) from e

        payload: Any = None
        try:
            payload = json.loads(body) if body else None
        except ValueError:
            payload = None

        if not 200 <= status < 300:
            error = payload.get("error") if isinstance(payload, dict) else None
            description = payload.get("error_description") if isinstance(payload, dict) else None
            raise AuthenticationRequiredError(
                f"Token exchange rejected ({status}): {description or error or body[:200]}",
                details={"status": status, "error": error, "error_description": description}
            )

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthenticationRequiredError(
                "Token endpoint response has no access_token",
                details={"status": status}
            )
        return payload

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._http_session is not None:
            yield self._http_session
            return
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield session

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def restore_session(self) -> Credential | None:
        """
        Adopt a previously persisted credential without prompting.

        Returns:
            The restored credential, or None if nothing usable is stored.
            A corrupted entry is cleared.
        """
        stored = self._store.get(ACCESS_TOKEN_KEY)
        if stored is None:
            return None

        try:
            credential = Credential.from_storage(stored)
        except ValueError as e:
            logger.warning(f"Discarding unusable stored credential: {e}")
            self._store.clear(ACCESS_TOKEN_KEY)
            return None

        self._credential = credential
        self._state = AuthState.AUTHENTICATED
        logger.debug("Session restored from storage")
        return credential

    def current_credential(self) -> Credential | None:
        return self._credential

    def invalidate(self, expected: Credential | None = None) -> bool:
        """
        Drop the active credential after an upstream authentication failure.

        Args:
            expected: The credential the failing request used. When given,
                      nothing happens unless it is still the active one, so
                      a late failure cannot wipe a newer login.

        Returns:
            True if the credential was cleared.
        """
        if expected is not None and self._credential != expected:
            logger.debug("Ignoring invalidation for a credential that is no longer active")
            return False

        self._store.clear(ACCESS_TOKEN_KEY)
        self._credential = None
        self._state = AuthState.UNAUTHENTICATED
        logger.info("Session invalidated")
        return True

    def logout(self) -> None:
        """Explicit logout: clear the credential and any pending login."""
        self._store.clear(CODE_VERIFIER_KEY)
        self._store.clear(ACCESS_TOKEN_KEY)
        self._credential = None
        self._state = AuthState.UNAUTHENTICATED

    def _adopt(self, credential: Credential) -> None:
        # Persist first; a credential that is not on disk is never advertised
        try:
            self._store.set(ACCESS_TOKEN_KEY, credential.to_storage())
        except SessionStoreError:
            self._fail()
            raise
        self._credential = credential
        self._state = AuthState.AUTHENTICATED

    def _fail(self) -> None:
        self._store.clear(CODE_VERIFIER_KEY)
        self._state = (
            AuthState.AUTHENTICATED if self._credential is not None
            else AuthState.UNAUTHENTICATED
        )
