"""Test the PKCE login flow"""

import base64
import hashlib
import json
from urllib.parse import parse_qs, urlparse

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession
from track_analyzer.core.exceptions import (
    AuthenticationRequiredError,
    SessionStoreError,
    TransportError,
)
from track_analyzer.core.session_store import (
    ACCESS_TOKEN_KEY,
    CODE_VERIFIER_KEY,
    MemorySessionStore,
)
from track_analyzer.spotify.auth import (
    UNRESERVED_CHARACTERS,
    AuthState,
    PKCEAuthenticator,
    derive_challenge,
    generate_verifier,
    parse_callback,
    strip_callback_params,
)
from track_analyzer.spotify.models import Credential

TOKEN_URL = "https://accounts.example.com/api/token"


def token_response(token="access-123", expires_in=3600):
    return FakeResponse(200, {
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": expires_in,
        "scope": "user-read-private",
    })


class FailingStore(MemorySessionStore):
    """Store that refuses to persist the access token"""

    def set(self, key, value):
        if key == ACCESS_TOKEN_KEY:
            raise SessionStoreError("disk full")
        super().set(key, value)


class TestVerifierAndChallenge:
    """Test PKCE primitives"""

    def test_verifier_charset_and_length(self):
        """Test verifiers use only unreserved characters"""
        for length in (43, 64, 128):
            verifier = generate_verifier(length)
            assert len(verifier) == length
            assert set(verifier) <= set(UNRESERVED_CHARACTERS)

    @pytest.mark.parametrize("length", [42, 129, 0])
    def test_verifier_length_bounds(self, length):
        """Test out-of-range lengths are rejected"""
        with pytest.raises(ValueError):
            generate_verifier(length)

    def test_verifiers_are_random(self):
        assert generate_verifier() != generate_verifier()

    def test_challenge_matches_rfc_example(self):
        """Test the RFC 7636 appendix B example"""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        assert derive_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_challenge_is_unpadded_base64url(self):
        verifier = generate_verifier()
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())

        assert derive_challenge(verifier) == expected.decode().rstrip("=")
        assert "=" not in derive_challenge(verifier)


class TestCallbackParsing:
    """Test callback normalization and cleanup"""

    def test_full_url(self):
        params = parse_callback("http://127.0.0.1:8888/callback?code=abc&state=xyz")

        assert params == {"code": "abc", "state": "xyz"}

    def test_fragment_token(self):
        """Test tokens delivered in the URL fragment"""
        params = parse_callback("http://127.0.0.1:8888/callback#access_token=tok&expires_in=60")

        assert params["access_token"] == "tok"
        assert params["expires_in"] == "60"

    def test_query_string_and_mapping(self):
        assert parse_callback("?code=abc") == {"code": "abc"}
        assert parse_callback({"code": ["abc"], "empty": []}) == {"code": "abc"}

    def test_strip_callback_params(self):
        """Test auth params are removed and others kept"""
        url = "http://127.0.0.1:8888/callback?code=abc&state=s&lang=en#access_token=t"

        assert strip_callback_params(url) == "http://127.0.0.1:8888/callback?lang=en"


class TestBeginLogin:
    """Test the consent redirect phase"""

    def test_authorization_url(self, auth_config, memory_store):
        """Test the URL carries every required parameter"""
        auth = PKCEAuthenticator(auth_config, memory_store)

        url = auth.begin_login()
        parsed = urlparse(url)
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        verifier = memory_store.get(CODE_VERIFIER_KEY)

        assert url.startswith(auth_config.authorize_url + "?")
        assert query["client_id"] == auth_config.client_id
        assert query["response_type"] == "code"
        assert query["redirect_uri"] == auth_config.redirect_uri
        assert query["scope"] == auth_config.scope
        assert query["code_challenge_method"] == "S256"
        assert query["code_challenge"] == derive_challenge(verifier)
        assert auth.state is AuthState.AWAITING_CONSENT
        assert auth.has_pending_login

    def test_new_login_replaces_verifier(self, auth_config, memory_store):
        auth = PKCEAuthenticator(auth_config, memory_store)
        auth.begin_login()
        first = memory_store.get(CODE_VERIFIER_KEY)
        auth.begin_login()

        assert memory_store.get(CODE_VERIFIER_KEY) != first


class TestCompleteLogin:
    """Test the callback phase"""

    @pytest.mark.asyncio
    async def test_code_exchange(self, auth_config, memory_store):
        """Test a successful exchange persists then adopts the credential"""
        session = FakeSession({TOKEN_URL: token_response()})
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=session)
        auth.begin_login()
        verifier = memory_store.get(CODE_VERIFIER_KEY)

        credential = await auth.complete_login({"code": "the-code"})

        request = session.requests[0]
        assert request["method"] == "POST"
        assert request["data"] == {
            "client_id": auth_config.client_id,
            "grant_type": "authorization_code",
            "code": "the-code",
            "redirect_uri": auth_config.redirect_uri,
            "code_verifier": verifier,
        }
        assert credential.access_token == "access-123"
        assert credential.verifier == verifier
        assert auth.state is AuthState.AUTHENTICATED
        assert auth.current_credential() == credential
        assert memory_store.get(CODE_VERIFIER_KEY) is None
        stored = json.loads(memory_store.get(ACCESS_TOKEN_KEY))
        assert stored["access_token"] == "access-123"

    @pytest.mark.asyncio
    async def test_code_cannot_be_replayed(self, auth_config, memory_store):
        """Test the same code succeeds once and then fails locally"""
        session = FakeSession({TOKEN_URL: [token_response(), token_response("second")]})
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=session)
        auth.begin_login()
        callback = "http://127.0.0.1:8888/callback?code=the-code"

        await auth.complete_login(callback)
        with pytest.raises(AuthenticationRequiredError):
            await auth.complete_login(callback)

        assert len(session.requests) == 1
        assert auth.current_credential().access_token == "access-123"

    @pytest.mark.asyncio
    async def test_direct_token(self, auth_config, memory_store):
        """Test a callback that already carries a token"""
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=FakeSession())

        credential = await auth.complete_login("#access_token=direct&expires_in=3600")

        assert credential.access_token == "direct"
        assert credential.expires_at is not None
        assert auth.state is AuthState.AUTHENTICATED
        assert memory_store.get(ACCESS_TOKEN_KEY) is not None

    @pytest.mark.asyncio
    async def test_error_callback(self, auth_config, memory_store):
        """Test a denied consent clears the verifier"""
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=FakeSession())
        auth.begin_login()

        with pytest.raises(AuthenticationRequiredError) as exc_info:
            await auth.complete_login({"error": "access_denied"})

        assert exc_info.value.details["error"] == "access_denied"
        assert auth.state is AuthState.UNAUTHENTICATED
        assert memory_store.get(CODE_VERIFIER_KEY) is None

    @pytest.mark.asyncio
    async def test_callback_without_code(self, auth_config, memory_store):
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=FakeSession())
        auth.begin_login()

        with pytest.raises(AuthenticationRequiredError):
            await auth.complete_login({"state": "abc"})

        assert auth.state is AuthState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_exchange_rejected(self, auth_config, memory_store):
        """Test a non-2xx token response"""
        session = FakeSession({TOKEN_URL: FakeResponse(400, {
            "error": "invalid_grant",
            "error_description": "Invalid authorization code",
        })})
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=session)
        auth.begin_login()

        with pytest.raises(AuthenticationRequiredError) as exc_info:
            await auth.complete_login({"code": "bad"})

        assert exc_info.value.details["status"] == 400
        assert exc_info.value.details["error"] == "invalid_grant"
        assert auth.state is AuthState.UNAUTHENTICATED
        assert memory_store.get(CODE_VERIFIER_KEY) is None
        assert memory_store.get(ACCESS_TOKEN_KEY) is None

    @pytest.mark.asyncio
    async def test_exchange_network_failure(self, auth_config, memory_store):
        """Test transport failures are classified"""
        session = FakeSession({TOKEN_URL: aiohttp.ClientConnectionError("refused")})
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=session)
        auth.begin_login()

        with pytest.raises(TransportError):
            await auth.complete_login({"code": "abc"})

        assert auth.state is AuthState.UNAUTHENTICATED
        assert memory_store.get(CODE_VERIFIER_KEY) is None

    @pytest.mark.asyncio
    async def test_response_without_token(self, auth_config, memory_store):
        session = FakeSession({TOKEN_URL: FakeResponse(200, {"token_type": "Bearer"})})
        auth = PKCEAuthenticator(auth_config, memory_store, http_session=session)
        auth.begin_login()

        with pytest.raises(AuthenticationRequiredError):
            await auth.complete_login({"code": "abc"})

    @pytest.mark.asyncio
    async def test_unpersistable_credential_is_not_adopted(self, auth_config):
        """Test a credential that cannot be stored is never advertised"""
        store = FailingStore()
        session = FakeSession({TOKEN_URL: token_response()})
        auth = PKCEAuthenticator(auth_config, store, http_session=session)
        auth.begin_login()

        with pytest.raises(SessionStoreError):
            await auth.complete_login({"code": "abc"})

        assert auth.current_credential() is None
        assert auth.state is AuthState.UNAUTHENTICATED


class TestSessionLifecycle:
    """Test restore, invalidate and logout"""

    def test_restore_json_credential(self, auth_config):
        stored = Credential("tok", expires_at=2_000_000_000).to_storage()
        store = MemorySessionStore({ACCESS_TOKEN_KEY: stored})
        auth = PKCEAuthenticator(auth_config, store)

        credential = auth.restore_session()

        assert credential.access_token == "tok"
        assert credential.expires_at == 2_000_000_000
        assert auth.state is AuthState.AUTHENTICATED

    def test_restore_bare_token(self, auth_config):
        """Test a plain token string is accepted"""
        store = MemorySessionStore({ACCESS_TOKEN_KEY: "plain-token"})
        auth = PKCEAuthenticator(auth_config, store)

        assert auth.restore_session().access_token == "plain-token"

    def test_restore_corrupt_entry(self, auth_config):
        """Test an unusable entry is cleared"""
        store = MemorySessionStore({ACCESS_TOKEN_KEY: '{"expires_at": 5}'})
        auth = PKCEAuthenticator(auth_config, store)

        assert auth.restore_session() is None
        assert store.get(ACCESS_TOKEN_KEY) is None
        assert auth.state is AuthState.UNAUTHENTICATED

    @pytest.mark.parametrize("expiry", ["Infinity", "-Infinity", "NaN"])
    def test_restore_non_finite_expiry(self, auth_config, expiry):
        """Test a stored expiry that is not a finite number is cleared"""
        stored = '{"access_token": "tok", "expires_at": %s}' % expiry
        store = MemorySessionStore({ACCESS_TOKEN_KEY: stored})
        auth = PKCEAuthenticator(auth_config, store)

        assert auth.restore_session() is None
        assert store.get(ACCESS_TOKEN_KEY) is None
        assert auth.state is AuthState.UNAUTHENTICATED

    def test_restore_nothing(self, auth_config, memory_store):
        assert PKCEAuthenticator(auth_config, memory_store).restore_session() is None

    def test_invalidate_matching_credential(self, auth_config):
        store = MemorySessionStore({ACCESS_TOKEN_KEY: "tok"})
        auth = PKCEAuthenticator(auth_config, store)
        credential = auth.restore_session()

        assert auth.invalidate(expected=credential) is True
        assert auth.current_credential() is None
        assert auth.state is AuthState.UNAUTHENTICATED
        assert store.get(ACCESS_TOKEN_KEY) is None

    def test_invalidate_ignores_stale_credential(self, auth_config):
        """Test a late failure cannot wipe a newer login"""
        store = MemorySessionStore({ACCESS_TOKEN_KEY: "new-token"})
        auth = PKCEAuthenticator(auth_config, store)
        auth.restore_session()

        assert auth.invalidate(expected=Credential("old-token")) is False
        assert auth.current_credential().access_token == "new-token"
        assert store.get(ACCESS_TOKEN_KEY) == "new-token"

    def test_logout_clears_everything(self, auth_config):
        store = MemorySessionStore({ACCESS_TOKEN_KEY: "tok", CODE_VERIFIER_KEY: "v" * 43})
        auth = PKCEAuthenticator(auth_config, store)
        auth.restore_session()

        auth.logout()

        assert store.snapshot() == {}
        assert auth.state is AuthState.UNAUTHENTICATED


class TestCredential:
    """Test the credential model"""

    def test_expiry_margin(self):
        """Test the 60 second safety margin"""
        credential = Credential("tok", expires_at=1000)

        assert not credential.is_expired(now=900)
        assert credential.is_expired(now=940)
        assert not Credential("tok").is_expired()

    def test_from_token_response(self):
        credential = Credential.from_token_response(
            {"access_token": "tok", "expires_in": "3600"}, now=100
        )

        assert credential.expires_at == 3700
        assert credential.token_type == "Bearer"

    def test_repr_hides_token(self):
        assert "secret-token" not in repr(Credential("secret-token"))

    def test_authorization_header(self):
        assert Credential("tok").authorization_header() == {"Authorization": "Bearer tok"}
