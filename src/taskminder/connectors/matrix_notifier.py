# src/taskminder/connectors/matrix_notifier.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from nio import AsyncClient
from nio.responses import JoinedMembersResponse, JoinedRoomsResponse, RoomCreateResponse, RoomSendError

from ..errors import DeliveryFailed
from .matrix_client import create_matrix_client

logger = logging.getLogger(__name__)

ClientFactory = Callable[[object], Awaitable[AsyncClient | None]]


class MatrixNotifier:
    """
    Notification channel over Matrix.

    Destinations are either room ids ("!abc:server") or user ids ("@bob:server").
    For a user id we reuse an existing two-person room with them, or open a
    direct chat. Any Matrix error is raised as DeliveryFailed so the queue retries.
    """

    def __init__(self, settings, *, client_factory: ClientFactory = create_matrix_client) -> None:
        self._settings = settings
        self._client_factory = client_factory
        self._client: AsyncClient | None = None
        self._dm_rooms: dict[str, str] = {}

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await self._client_factory(self._settings)
        if self._client is None:
            raise DeliveryFailed("Matrix client is not available")
        return self._client

    async def _find_direct_room(self, client: AsyncClient, user_id: str) -> str | None:
        rooms = await client.joined_rooms()
        if not isinstance(rooms, JoinedRoomsResponse):
            raise DeliveryFailed(f"joined_rooms failed: {rooms}")

        for room_id in rooms.rooms:
            members = await client.joined_members(room_id)
            if not isinstance(members, JoinedMembersResponse):
                continue
            ids = {m.user_id for m in members.members}
            if len(ids) == 2 and user_id in ids:
                return room_id
        return None

    async def _resolve_room(self, client: AsyncClient, destination: str) -> str:
        if destination.startswith("!"):
            return destination

        cached = self._dm_rooms.get(destination)
        if cached:
            return cached

        room_id = await self._find_direct_room(client, destination)
        if room_id is None:
            resp = await client.room_create(is_direct=True, invite=[destination])
            if not isinstance(resp, RoomCreateResponse):
                raise DeliveryFailed(f"cannot open a direct chat with {destination}: {resp}")
            room_id = resp.room_id
            logger.info("Opened direct chat %s with %s", room_id, destination)

        self._dm_rooms[destination] = room_id
        return room_id

    async def deliver(self, destination: str, text: str) -> None:
        client = await self._get_client()
        room_id = await self._resolve_room(client, destination)

        resp = await client.room_send(
            room_id=room_id,
            message_type="m.room.message",
            content={"msgtype": "m.text", "body": text},
            ignore_unverified_devices=True,
        )
        if isinstance(resp, RoomSendError):
            # A dead DM room should not be reused on the next attempt.
            self._dm_rooms.pop(destination, None)
            raise DeliveryFailed(f"Matrix send to {room_id} failed: {resp.message}")

        logger.info("Reminder sent to %s via room %s", destination, room_id)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
