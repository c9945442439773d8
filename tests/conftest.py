"""Shared fixtures: settings, a temporary SQLite database and a stub Garmin."""

import base64
import hashlib
import json
from urllib.parse import parse_qs, parse_qsl, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from gofast.app import create_app
from gofast.core import Settings, create_db_engine
from gofast.models import Athlete
from gofast.services import GarminClient, MemoryVerifierStore

AUTHORIZE_URL = "https://connect.garmin.test/oauthConfirm"
TOKEN_URL = "https://diauth.garmin.test/oauth/token"
USER_INFO_URL = "https://connectapi.garmin.test/oauth-service/oauth/user-info"
PROFILE_URL = "https://connectapi.garmin.test/userprofile-service/userprofile"
REDIRECT_URI = "https://api.gofast.test/api/garmin/callback"
FRONTEND_URL = "https://athlete.gofast.test"

CLIENT_ID = "client-123"
CLIENT_SECRET = "secret-456"


def s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def query_params(url: str) -> dict:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


class FakeGarmin:
    """Stand-in for the Garmin token and profile endpoints.

    ``authorize(code, challenge)`` plays the part of the athlete approving
    access: the token endpoint later accepts ``code`` only together with a
    verifier whose S256 hash equals ``challenge``, and only once.
    """

    def __init__(self):
        self.codes = {}
        self.used_codes = set()
        self.token_requests = []
        self.user_info_calls = []
        self.profile_calls = []
        self.token_response = {
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 86400,
            "scope": "CONNECT_READ PARTNER_READ",
        }
        self.refresh_response = {
            "access_token": "access-2",
            "refresh_token": "refresh-2",
            "expires_in": 7200,
            "scope": "CONNECT_READ CONNECT_WRITE",
        }
        self.user_info_status = 200
        self.user_info = {"userId": "garmin-user-1", "garminUserName": "ada"}
        self.profile_status = 200
        self.profile = {
            "id": "garmin-profile-1",
            "userData": {"measurementSystem": "metric", "timeFormat": "time_twenty_four_hr"},
            "userSleep": {"sleepTime": 79200, "wakeTime": 21600},
        }

    def authorize(self, code: str, challenge: str) -> None:
        self.codes[code] = challenge

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if request.method == "POST" and url == TOKEN_URL:
            return self._token(dict(parse_qsl(request.content.decode())))
        if request.method == "GET" and url == USER_INFO_URL:
            self.user_info_calls.append(request.headers.get("Authorization"))
            if self.user_info_status != 200:
                return httpx.Response(self.user_info_status, text="user info unavailable")
            return httpx.Response(200, json=self.user_info)
        if request.method == "GET" and url == PROFILE_URL:
            self.profile_calls.append(request.headers.get("Authorization"))
            if self.profile_status != 200:
                return httpx.Response(self.profile_status, text="profile unavailable")
            return httpx.Response(200, json=self.profile)
        return httpx.Response(404, text=f"unexpected {request.method} {url}")

    def _token(self, form: dict) -> httpx.Response:
        self.token_requests.append(form)
        if form.get("client_id") != CLIENT_ID or form.get("client_secret") != CLIENT_SECRET:
            return httpx.Response(401, json={"error": "invalid_client"})

        if form.get("grant_type") == "refresh_token":
            if form.get("refresh_token") != self.token_response["refresh_token"]:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.refresh_response)

        if form.get("grant_type") != "authorization_code":
            return httpx.Response(400, json={"error": "unsupported_grant_type"})
        if form.get("redirect_uri") != REDIRECT_URI:
            return httpx.Response(400, json={"error": "redirect_uri_mismatch"})

        code = form.get("code")
        challenge = self.codes.get(code)
        if challenge is None or code in self.used_codes:
            return httpx.Response(400, json={"error": "invalid_grant", "detail": "bad code"})
        self.used_codes.add(code)
        if s256(form.get("code_verifier", "")) != challenge:
            return httpx.Response(
                400, json={"error": "invalid_grant", "detail": "PKCE verification failed"}
            )
        return httpx.Response(200, json=self.token_response)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        garmin_client_id=CLIENT_ID,
        garmin_client_secret=CLIENT_SECRET,
        garmin_redirect_uri=REDIRECT_URI,
        garmin_authorize_url=AUTHORIZE_URL,
        garmin_token_url=TOKEN_URL,
        garmin_user_info_url=USER_INFO_URL,
        garmin_profile_url=PROFILE_URL,
        frontend_url=FRONTEND_URL,
        allowed_cors_origins=[FRONTEND_URL],
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        verifier_ttl_seconds=300,
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings.database_url)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def athlete_id(engine):
    with Session(engine) as session:
        session.add(Athlete(id="A1", email="ada@gofast.test", first_name="Ada"))
        session.commit()
    return "A1"


@pytest.fixture
def fake_garmin():
    return FakeGarmin()


@pytest.fixture
def http_client(fake_garmin):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_garmin.handler))


@pytest.fixture
def garmin_client(settings, http_client):
    return GarminClient(settings, http_client)


@pytest.fixture
def verifier_store():
    return MemoryVerifierStore()


@pytest.fixture
def client(settings, engine, verifier_store, http_client):
    app = create_app(
        settings, engine=engine, verifier_store=verifier_store, http_client=http_client
    )
    with TestClient(app) as test_client:
        yield test_client


def load_athlete(engine, athlete_id="A1"):
    with Session(engine) as session:
        return session.get(Athlete, athlete_id)


def post_json(client, path, payload, method="post"):
    return client.request(
        method.upper(),
        path,
        content=json.dumps(payload),
        headers={"Content-Type": "application/json"},
    )
