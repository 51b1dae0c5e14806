import base64
import hashlib
import json
from datetime import timedelta

import pytest
from jose import jwt
from livekit import api

from app.services.errors import WebhookVerificationError
from app.services.media import (
    LiveKitMediaClient,
    MediaClientError,
    MockMediaClient,
    TokenGrants,
    build_media_client,
    build_room_egress,
)

API_KEY = "APItestkey"
API_SECRET = "livekit-test-secret-0123456789abcdefghij"


@pytest.fixture
def livekit_client():
    return LiveKitMediaClient("wss://media.example.com", API_KEY, API_SECRET)


def _signed(body: str) -> str:
    digest = base64.b64encode(hashlib.sha256(body.encode()).digest()).decode()
    return api.AccessToken(API_KEY, API_SECRET).with_sha256(digest).to_jwt()


def test_livekit_token_carries_room_grants(livekit_client):
    token = livekit_client.generate_token(
        identity="user-1",
        room_name="room-abc",
        display_name="Ada",
        grants=TokenGrants.for_participant(is_host=True),
        valid_for=timedelta(hours=1),
    )

    claims = jwt.decode(token, API_SECRET, algorithms=["HS256"], options={"verify_aud": False})
    assert claims["sub"] == "user-1"
    assert claims["iss"] == API_KEY
    assert claims["name"] == "Ada"
    assert claims["video"]["room"] == "room-abc"
    assert claims["video"]["roomJoin"] is True
    assert claims["video"]["roomAdmin"] is True


def test_livekit_member_token_is_not_admin(livekit_client):
    token = livekit_client.generate_token(
        identity="user-2",
        room_name="room-abc",
        display_name="",
        grants=TokenGrants.for_participant(is_host=False),
        valid_for=timedelta(hours=1),
    )

    claims = jwt.decode(token, API_SECRET, algorithms=["HS256"], options={"verify_aud": False})
    assert claims["name"] == "user-2"
    assert not claims["video"].get("roomAdmin")


def test_livekit_webhook_verification(livekit_client):
    body = json.dumps({"event": "room_started", "room": {"name": "room-abc", "sid": "RM_1"}})

    payload = livekit_client.verify_webhook(body, _signed(body))

    assert payload["event"] == "room_started"
    assert payload["room"]["name"] == "room-abc"


def test_livekit_webhook_rejects_tampered_body(livekit_client):
    body = json.dumps({"event": "room_started", "room": {"name": "room-abc"}})
    tampered = body.replace("room-abc", "room-xyz")

    with pytest.raises(WebhookVerificationError):
        livekit_client.verify_webhook(tampered, _signed(body))
    with pytest.raises(WebhookVerificationError):
        livekit_client.verify_webhook(body, None)


@pytest.mark.anyio("asyncio")
async def test_livekit_delete_room_tolerates_missing_room(livekit_client):
    class FakeRoomService:
        def __init__(self, error):
            self.error = error

        async def delete_room(self, request):
            raise self.error

    class FakeApi:
        def __init__(self, error):
            self.room = FakeRoomService(error)

        async def aclose(self):
            return None

    livekit_client._api = FakeApi(api.TwirpError("not_found", "requested room does not exist", status=404))
    await livekit_client.delete_room("room-gone")

    livekit_client._api = FakeApi(api.TwirpError("internal", "boom", status=500))
    with pytest.raises(MediaClientError):
        await livekit_client.delete_room("room-broken")
    await livekit_client.aclose()
    assert livekit_client._api is None


def test_build_room_egress_with_s3_upload():
    egress = build_room_egress(
        "room-abc",
        {
            "audio_only": True,
            "filepath": "recordings/{room_name}.mp4",
            "s3": {"bucket": "calls", "region": "eu-west-1", "force_path_style": True},
        },
    )

    assert egress.room.room_name == "room-abc"
    assert egress.room.audio_only is True
    output = egress.room.file_outputs[0]
    assert output.filepath == "recordings/{room_name}.mp4"
    assert output.s3.bucket == "calls"
    assert output.s3.region == "eu-west-1"


def test_build_room_egress_without_bucket():
    egress = build_room_egress("room-abc", {"filepath": "out.mp4"})
    assert not egress.room.file_outputs[0].HasField("s3")


@pytest.mark.anyio("asyncio")
async def test_mock_client_records_calls_and_failures():
    media = MockMediaClient()
    room = await media.create_room("room-1", 5, 300, 30, "{}")

    assert room.sid == "RM_mock0001"
    assert await media.list_participants("room-1") == []
    token = media.generate_token(
        "user-1", "room-1", "Ada", TokenGrants(), timedelta(minutes=5)
    )
    assert token == "mock-token.room-1.user-1.member"

    media.fail_on("delete_room")
    with pytest.raises(MediaClientError):
        await media.delete_room("room-1")
    assert media.operations("delete_room") == [("delete_room", "room-1")]
    assert "room-1" in media.rooms


def test_mock_client_webhook_token():
    media = MockMediaClient(webhook_token="shared")
    body = json.dumps({"event": "room_finished"})

    assert media.verify_webhook(body, "shared") == {"event": "room_finished"}
    with pytest.raises(WebhookVerificationError):
        media.verify_webhook(body, "wrong")
    with pytest.raises(WebhookVerificationError):
        MockMediaClient().verify_webhook("[1, 2]", None)


def test_build_media_client_honours_mock_switch(monkeypatch):
    monkeypatch.setenv("HUDDLE_MEDIA_USE_MOCK", "true")
    assert isinstance(build_media_client(), MockMediaClient)

    monkeypatch.setenv("HUDDLE_MEDIA_USE_MOCK", "false")
    monkeypatch.setenv("LIVEKIT_URL", "wss://media.example.com")
    client = build_media_client()
    assert isinstance(client, LiveKitMediaClient)
    assert client.url == "wss://media.example.com"
