"""Media infrastructure adapter.

Rooms, access tokens and transport-level participants live in LiveKit. The
coordinator only talks to the :class:`MediaClient` interface so tests and
local development can run against :class:`MockMediaClient`.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from google.protobuf.json_format import MessageToDict
from livekit import api

from app.config.loader import get_media_settings, get_webhook_settings
from app.services.errors import WebhookVerificationError

logger = logging.getLogger("media")


class MediaClientError(Exception):
    """Raised when the media infrastructure rejects or fails a request."""


@dataclass(frozen=True)
class TokenGrants:
    can_publish: bool = True
    can_subscribe: bool = True
    can_publish_data: bool = True
    room_admin: bool = False

    @classmethod
    def for_participant(cls, is_host: bool) -> "TokenGrants":
        return cls(room_admin=bool(is_host))


@dataclass(frozen=True)
class ExternalRoom:
    name: str
    sid: Optional[str] = None


@dataclass(frozen=True)
class ExternalParticipant:
    identity: str
    name: str = ""
    sid: str = ""
    joined_at: Optional[int] = None


class MediaClient(ABC):
    """Operations the room services need from the media infrastructure."""

    @abstractmethod
    async def create_room(
        self,
        name: str,
        max_participants: int,
        empty_timeout: int,
        departure_timeout: int,
        metadata: str,
        egress: Optional[Dict[str, Any]] = None,
    ) -> ExternalRoom:
        ...

    @abstractmethod
    async def delete_room(self, name: str) -> None:
        ...

    @abstractmethod
    def generate_token(
        self,
        identity: str,
        room_name: str,
        display_name: str,
        grants: TokenGrants,
        valid_for: timedelta,
    ) -> str:
        ...

    @abstractmethod
    async def remove_participant(self, room_name: str, identity: str) -> None:
        ...

    @abstractmethod
    async def list_participants(self, room_name: str) -> List[ExternalParticipant]:
        ...

    @abstractmethod
    def verify_webhook(self, body: str, authorization: Optional[str]) -> Dict[str, Any]:
        """Authenticate a webhook delivery and return its decoded payload."""

    async def aclose(self) -> None:
        return None


def _http_url(url: str) -> str:
    if url.startswith("wss://"):
        return "https://" + url[len("wss://") :]
    if url.startswith("ws://"):
        return "http://" + url[len("ws://") :]
    return url


def build_room_egress(room_name: str, settings: Dict[str, Any]) -> api.RoomEgress:
    """Translate the auto-recording config section into a room-composite egress."""
    s3_settings = settings.get("s3") or {}
    file_output = api.EncodedFileOutput(filepath=settings.get("filepath") or "")
    if s3_settings.get("bucket"):
        file_output.s3.CopyFrom(
            api.S3Upload(
                access_key=s3_settings.get("access_key") or "",
                secret=s3_settings.get("secret") or "",
                region=s3_settings.get("region") or "",
                endpoint=s3_settings.get("endpoint") or "",
                bucket=s3_settings.get("bucket") or "",
                force_path_style=bool(s3_settings.get("force_path_style")),
            )
        )
    return api.RoomEgress(
        room=api.RoomCompositeEgressRequest(
            room_name=room_name,
            audio_only=bool(settings.get("audio_only")),
            file_outputs=[file_output],
        )
    )


class LiveKitMediaClient(MediaClient):
    def __init__(self, url: str, api_key: str, api_secret: str):
        self.url = url
        self.api_key = api_key
        self.api_secret = api_secret
        self._api: Optional[api.LiveKitAPI] = None

    def _client(self) -> api.LiveKitAPI:
        # LiveKitAPI opens an aiohttp session, so it must be built inside the loop.
        if self._api is None:
            self._api = api.LiveKitAPI(
                url=_http_url(self.url),
                api_key=self.api_key,
                api_secret=self.api_secret,
            )
        return self._api

    async def create_room(
        self,
        name: str,
        max_participants: int,
        empty_timeout: int,
        departure_timeout: int,
        metadata: str,
        egress: Optional[Dict[str, Any]] = None,
    ) -> ExternalRoom:
        request = api.CreateRoomRequest(
            name=name,
            empty_timeout=empty_timeout,
            departure_timeout=departure_timeout,
            max_participants=max_participants,
            metadata=metadata,
        )
        if egress:
            request.egress.CopyFrom(build_room_egress(name, egress))
        try:
            room = await self._client().room.create_room(request)
        except Exception as exc:  # noqa: BLE001
            raise MediaClientError(f"create_room failed for {name}: {exc}") from exc
        logger.info("Created LiveKit room %s (sid=%s)", room.name, room.sid)
        return ExternalRoom(name=room.name, sid=room.sid or None)

    async def delete_room(self, name: str) -> None:
        try:
            await self._client().room.delete_room(api.DeleteRoomRequest(room=name))
        except api.TwirpError as exc:
            if exc.code == "not_found":
                logger.debug("LiveKit room %s already gone", name)
                return
            raise MediaClientError(f"delete_room failed for {name}: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise MediaClientError(f"delete_room failed for {name}: {exc}") from exc

    def generate_token(
        self,
        identity: str,
        room_name: str,
        display_name: str,
        grants: TokenGrants,
        valid_for: timedelta,
    ) -> str:
        token = api.AccessToken(self.api_key, self.api_secret)
        token.with_identity(identity).with_name(display_name or identity).with_ttl(
            valid_for
        ).with_grants(
            api.VideoGrants(
                room_join=True,
                room=room_name,
                can_publish=grants.can_publish,
                can_subscribe=grants.can_subscribe,
                can_publish_data=grants.can_publish_data,
                room_admin=grants.room_admin,
            )
        )
        return token.to_jwt()

    async def remove_participant(self, room_name: str, identity: str) -> None:
        try:
            await self._client().room.remove_participant(
                api.RoomParticipantIdentity(room=room_name, identity=identity)
            )
        except Exception as exc:  # noqa: BLE001
            raise MediaClientError(
                f"remove_participant failed for {identity} in {room_name}: {exc}"
            ) from exc

    async def list_participants(self, room_name: str) -> List[ExternalParticipant]:
        try:
            response = await self._client().room.list_participants(
                api.ListParticipantsRequest(room=room_name)
            )
        except Exception as exc:  # noqa: BLE001
            raise MediaClientError(
                f"list_participants failed for {room_name}: {exc}"
            ) from exc
        return [
            ExternalParticipant(
                identity=item.identity,
                name=item.name,
                sid=item.sid,
                joined_at=item.joined_at or None,
            )
            for item in response.participants
        ]

    def verify_webhook(self, body: str, authorization: Optional[str]) -> Dict[str, Any]:
        receiver = api.WebhookReceiver(
            api.TokenVerifier(self.api_key, self.api_secret)
        )
        try:
            event = receiver.receive(body, authorization or "")
        except Exception as exc:  # noqa: BLE001
            raise WebhookVerificationError(f"Invalid webhook signature: {exc}") from exc
        return MessageToDict(event, preserving_proto_field_name=True)

    async def aclose(self) -> None:
        if self._api is not None:
            await self._api.aclose()
            self._api = None


@dataclass
class MockMediaClient(MediaClient):
    """In-memory media infrastructure used by tests and local development."""

    webhook_token: str = ""
    rooms: Dict[str, ExternalRoom] = field(default_factory=dict)
    participants: Dict[str, List[ExternalParticipant]] = field(default_factory=dict)
    calls: List[Tuple[str, ...]] = field(default_factory=list)
    failures: Set[str] = field(default_factory=set)
    _sequence: int = 0

    def fail_on(self, *operations: str) -> None:
        self.failures.update(operations)

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise MediaClientError(f"mock {operation} failure")

    async def create_room(
        self,
        name: str,
        max_participants: int,
        empty_timeout: int,
        departure_timeout: int,
        metadata: str,
        egress: Optional[Dict[str, Any]] = None,
    ) -> ExternalRoom:
        self.calls.append(("create_room", name))
        self._maybe_fail("create_room")
        self._sequence += 1
        room = ExternalRoom(name=name, sid=f"RM_mock{self._sequence:04d}")
        self.rooms[name] = room
        self.participants.setdefault(name, [])
        return room

    async def delete_room(self, name: str) -> None:
        self.calls.append(("delete_room", name))
        self._maybe_fail("delete_room")
        self.rooms.pop(name, None)
        self.participants.pop(name, None)

    def generate_token(
        self,
        identity: str,
        room_name: str,
        display_name: str,
        grants: TokenGrants,
        valid_for: timedelta,
    ) -> str:
        self.calls.append(("generate_token", room_name, identity))
        self._maybe_fail("generate_token")
        role = "admin" if grants.room_admin else "member"
        return f"mock-token.{room_name}.{identity}.{role}"

    async def remove_participant(self, room_name: str, identity: str) -> None:
        self.calls.append(("remove_participant", room_name, identity))
        self._maybe_fail("remove_participant")
        members = self.participants.get(room_name, [])
        self.participants[room_name] = [p for p in members if p.identity != identity]

    async def list_participants(self, room_name: str) -> List[ExternalParticipant]:
        self.calls.append(("list_participants", room_name))
        self._maybe_fail("list_participants")
        return list(self.participants.get(room_name, []))

    def verify_webhook(self, body: str, authorization: Optional[str]) -> Dict[str, Any]:
        if self.webhook_token and authorization != self.webhook_token:
            raise WebhookVerificationError("Invalid webhook signature")
        try:
            payload = json.loads(body or "{}")
        except ValueError as exc:
            raise WebhookVerificationError("Malformed webhook payload") from exc
        if not isinstance(payload, dict):
            raise WebhookVerificationError("Malformed webhook payload")
        return payload

    def operations(self, name: str) -> List[Tuple[str, ...]]:
        return [call for call in self.calls if call[0] == name]


_media_client: Optional[MediaClient] = None


def build_media_client() -> MediaClient:
    settings = get_media_settings()
    if settings["use_mock"]:
        logger.info("Using in-memory media client")
        return MockMediaClient(webhook_token=get_webhook_settings()["mock_token"])
    logger.info("Using LiveKit media client at %s", settings["url"])
    return LiveKitMediaClient(
        url=settings["url"],
        api_key=settings["api_key"],
        api_secret=settings["api_secret"],
    )


def get_media_client() -> MediaClient:
    """FastAPI dependency returning the process-wide media client."""
    global _media_client
    if _media_client is None:
        _media_client = build_media_client()
    return _media_client


async def close_media_client() -> None:
    global _media_client
    if _media_client is not None:
        await _media_client.aclose()
        _media_client = None
