"""
Live presence and cursor relay for gallery viewers.

Each gallery slug gets a room holding the connected sockets, the membership
roster (who is viewing) and a cursor board (where they are pointing). The two
are tracked separately: membership changes only on explicit join/leave or
disconnect, while cursors also expire when a peer goes quiet for longer than
the staleness threshold.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..settings import PRESENCE_STALE_SECONDS, PRESENCE_SWEEP_SECONDS
from .publisher import MEMBER_ADDED, MEMBER_REMOVED, gallery_channel, realtime

logger = logging.getLogger(__name__)


class Socket(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass
class CursorState:
    user_id: str
    name: str
    color: str
    x: float
    y: float
    last_active: float  # epoch seconds
    gallery_slug: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.user_id,
            "name": self.name,
            "color": self.color,
            "x": self.x,
            "y": self.y,
            "lastActive": int(self.last_active * 1000),
            "gallerySlug": self.gallery_slug,
        }


class CursorBoard:
    """Last-write-wins cursor map keyed by user id."""

    def __init__(self, stale_seconds: float = PRESENCE_STALE_SECONDS) -> None:
        self.stale_seconds = stale_seconds
        self._cursors: dict[str, CursorState] = {}

    def __len__(self) -> int:
        return len(self._cursors)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._cursors

    def upsert(self, state: CursorState) -> CursorState:
        self._cursors[state.user_id] = state
        return state

    def remove(self, user_id: str) -> bool:
        return self._cursors.pop(user_id, None) is not None

    def sweep(self, now: float) -> list[str]:
        """Drop cursors idle for longer than the threshold; returns removed user ids."""
        cutoff = now - self.stale_seconds
        stale = [uid for uid, cursor in self._cursors.items() if cursor.last_active < cutoff]
        for uid in stale:
            del self._cursors[uid]
        return stale

    def snapshot(self) -> list[CursorState]:
        return list(self._cursors.values())


@dataclass
class Member:
    user_id: str
    name: str
    color: str
    image_url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.user_id, "name": self.name, "color": self.color, "imageUrl": self.image_url}


@dataclass
class GalleryRoom:
    slug: str
    sockets: dict[Socket, Member] = field(default_factory=dict)
    cursors: CursorBoard = field(default_factory=CursorBoard)

    def members(self) -> list[Member]:
        seen: dict[str, Member] = {}
        for member in self.sockets.values():
            seen.setdefault(member.user_id, member)
        return list(seen.values())

    def has_user(self, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.sockets.values())


class PresenceHub:
    """Tracks rooms per gallery slug and relays presence traffic between sockets."""

    def __init__(
        self,
        stale_seconds: float = PRESENCE_STALE_SECONDS,
        sweep_seconds: float = PRESENCE_SWEEP_SECONDS,
    ) -> None:
        self.stale_seconds = stale_seconds
        self.sweep_seconds = sweep_seconds
        self.rooms: dict[str, GalleryRoom] = {}
        self._lock = asyncio.Lock()
        self._sweeper_task: asyncio.Task | None = None

    def _room(self, slug: str) -> GalleryRoom:
        room = self.rooms.get(slug)
        if room is None:
            room = GalleryRoom(slug=slug, cursors=CursorBoard(self.stale_seconds))
            self.rooms[slug] = room
        return room

    def roster(self, slug: str) -> list[Member]:
        room = self.rooms.get(slug)
        return room.members() if room else []

    def cursors(self, slug: str) -> list[CursorState]:
        room = self.rooms.get(slug)
        return room.cursors.snapshot() if room else []

    async def join(self, slug: str, socket: Socket, member: Member) -> bool:
        """
        Add ``socket`` to the room for ``slug``.

        Re-joining with a socket already in the room is a no-op. Returns True
        when the user became a new member of the room.
        """
        async with self._lock:
            room = self._room(slug)
            if socket in room.sockets:
                return False
            is_new_member = not room.has_user(member.user_id)
            room.sockets[socket] = member

        await self._send(socket, {
            "type": "presence-state",
            "gallerySlug": slug,
            "members": [m.to_payload() for m in room.members()],
            "cursors": [c.to_payload() for c in room.cursors.snapshot()],
        })

        if is_new_member:
            logger.info(f"User {member.user_id} joined gallery {slug}")
            await self._broadcast(room, {"type": MEMBER_ADDED, "member": member.to_payload()}, exclude=socket)
            await asyncio.to_thread(realtime.trigger, gallery_channel(slug), MEMBER_ADDED, member.to_payload())
        return is_new_member

    async def leave(self, slug: str, socket: Socket) -> bool:
        """Remove ``socket``; clears the user's cursor and membership if it was their last socket."""
        async with self._lock:
            room = self.rooms.get(slug)
            if room is None or socket not in room.sockets:
                return False
            member = room.sockets.pop(socket)
            gone = not room.has_user(member.user_id)
            if gone:
                room.cursors.remove(member.user_id)
            if not room.sockets:
                del self.rooms[slug]

        if gone:
            logger.info(f"User {member.user_id} left gallery {slug}")
            await self._broadcast(room, {"type": "cursor-removed", "id": member.user_id})
            await self._broadcast(room, {"type": MEMBER_REMOVED, "member": member.to_payload()})
            await asyncio.to_thread(realtime.trigger, gallery_channel(slug), MEMBER_REMOVED, member.to_payload())
        return gone

    async def leave_all(self, socket: Socket) -> None:
        for slug in [s for s, room in self.rooms.items() if socket in room.sockets]:
            await self.leave(slug, socket)

    async def update_cursor(
        self,
        slug: str,
        socket: Socket,
        x: float,
        y: float,
        now: float | None = None,
    ) -> CursorState | None:
        room = self.rooms.get(slug)
        if room is None or socket not in room.sockets:
            return None

        member = room.sockets[socket]
        state = room.cursors.upsert(
            CursorState(
                user_id=member.user_id,
                name=member.name,
                color=member.color,
                x=x,
                y=y,
                last_active=time.time() if now is None else now,
                gallery_slug=slug,
            )
        )
        await self._broadcast(room, {"type": "cursor-update", **state.to_payload()}, exclude=socket)
        return state

    async def sweep(self, now: float | None = None) -> dict[str, list[str]]:
        """Expire idle cursors in every room; returns removed user ids per slug."""
        now = time.time() if now is None else now
        removed: dict[str, list[str]] = {}
        for slug, room in list(self.rooms.items()):
            stale = room.cursors.sweep(now)
            if not stale:
                continue
            removed[slug] = stale
            for user_id in stale:
                await self._broadcast(room, {"type": "cursor-removed", "id": user_id})
        if removed:
            logger.debug(f"Presence sweep removed cursors: {removed}")
        return removed

    async def start_sweeper(self) -> None:
        if self._sweeper_task is not None:
            return
        self._sweeper_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Presence sweeper started (every {self.sweep_seconds}s, stale after {self.stale_seconds}s)")

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is None:
            return
        self._sweeper_task.cancel()
        try:
            await self._sweeper_task
        except asyncio.CancelledError:
            pass
        self._sweeper_task = None
        logger.info("Presence sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Presence sweep failed: {e}")

    async def _send(self, socket: Socket, message: dict[str, Any]) -> bool:
        try:
            await socket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Dropping presence socket after send failure: {e}")
            return False

    async def _broadcast(self, room: GalleryRoom, message: dict[str, Any], exclude: Socket | None = None) -> None:
        # Copy so sends can't race with joins and leaves.
        failed = [
            socket
            for socket in list(room.sockets)
            if socket is not exclude and not await self._send(socket, message)
        ]
        for socket in failed:
            await self.leave(room.slug, socket)


presence_hub = PresenceHub()
