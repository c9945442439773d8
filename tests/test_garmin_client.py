import httpx
import pytest

from gofast.core.errors import ExchangeFailed, ProfileFetchFailed, TokenRefreshFailed
from gofast.services.garmin_client import (
    GarminClient,
    TokenSet,
    parse_profile_snapshots,
    provider_user_id_from_profile,
)

from .conftest import REDIRECT_URI, s256

pytestmark = pytest.mark.anyio

VERIFIER = "v" * 64


async def test_exchange_posts_pkce_form(fake_garmin, garmin_client):
    fake_garmin.authorize("code-1", s256(VERIFIER))

    tokens = await garmin_client.exchange("code-1", VERIFIER)

    form = fake_garmin.token_requests[-1]
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "code-1"
    assert form["code_verifier"] == VERIFIER
    assert form["redirect_uri"] == REDIRECT_URI
    assert tokens.access_token == "access-1"
    assert tokens.refresh_token == "refresh-1"
    assert tokens.expires_in == 86400
    assert tokens.provider_user_id is None


async def test_exchange_with_wrong_verifier_fails(fake_garmin, garmin_client):
    fake_garmin.authorize("code-1", s256(VERIFIER))

    with pytest.raises(ExchangeFailed) as excinfo:
        await garmin_client.exchange("code-1", "w" * 64)

    assert excinfo.value.status_code == 400
    assert "PKCE verification failed" in excinfo.value.body
    assert excinfo.value.code == "token_exchange_failed"


async def test_authorization_code_is_single_use(fake_garmin, garmin_client):
    fake_garmin.authorize("code-1", s256(VERIFIER))
    await garmin_client.exchange("code-1", VERIFIER)

    with pytest.raises(ExchangeFailed):
        await garmin_client.exchange("code-1", VERIFIER)


async def test_exchange_transport_error_is_exchange_failed(settings):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http:
        client = GarminClient(settings, http)
        with pytest.raises(ExchangeFailed) as excinfo:
            await client.exchange("code-1", VERIFIER)

    assert excinfo.value.status_code is None


async def test_exchange_without_access_token_fails(settings):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
    ) as http:
        with pytest.raises(ExchangeFailed):
            await GarminClient(settings, http).exchange("code-1", VERIFIER)


async def test_refresh_uses_refresh_grant(fake_garmin, garmin_client):
    tokens = await garmin_client.refresh("refresh-1")

    assert fake_garmin.token_requests[-1]["grant_type"] == "refresh_token"
    assert tokens.access_token == "access-2"


async def test_refresh_rejected(garmin_client):
    with pytest.raises(TokenRefreshFailed):
        await garmin_client.refresh("stale-token")


async def test_user_info_sends_bearer_token(fake_garmin, garmin_client):
    body = await garmin_client.fetch_user_info("access-1")

    assert body["userId"] == "garmin-user-1"
    assert fake_garmin.user_info_calls == ["Bearer access-1"]


async def test_profile_error_raises_profile_fetch_failed(fake_garmin, garmin_client):
    fake_garmin.profile_status = 503

    with pytest.raises(ProfileFetchFailed) as excinfo:
        await garmin_client.fetch_profile("access-1")

    assert excinfo.value.status_code == 503


def test_token_set_reads_user_id_variants():
    assert TokenSet.from_response({"access_token": "a", "user_id": 42}).provider_user_id == "42"
    assert TokenSet.from_response({"access_token": "a", "userId": "u"}).provider_user_id == "u"
    assert TokenSet.from_response({"access_token": "a"}).provider_user_id is None


def test_profile_helpers():
    profile = {
        "id": 7,
        "userData": {"measurementSystem": "statute_us"},
        "userSleep": {"sleepTime": 80000},
    }

    assert provider_user_id_from_profile(profile) == "7"
    assert provider_user_id_from_profile({}) is None
    snapshots = parse_profile_snapshots(profile)
    assert snapshots["sleep"]["sleepTime"] == 80000
    assert snapshots["preferences"]["measurementSystem"] == "statute_us"
