"""Presence roster and cursor relay."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from starlette.websockets import WebSocketDisconnect

from beam.realtime.presence import CursorBoard, CursorState, Member, PresenceHub, presence_hub

SLUG = "gallery0001"


class FakeSocket:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def types(self) -> list[str]:
        return [message["type"] for message in self.sent]


def _member(user_id: str) -> Member:
    return Member(user_id=user_id, name=user_id.title(), color="#4CAF50")


def run(coro):
    return asyncio.run(coro)


class TestCursorBoard:
    def test_last_write_wins(self):
        board = CursorBoard(stale_seconds=15)
        board.upsert(CursorState("u1", "U1", "#000", 1, 1, last_active=100, gallery_slug=SLUG))
        board.upsert(CursorState("u1", "U1", "#000", 5, 6, last_active=101, gallery_slug=SLUG))
        assert len(board) == 1
        assert (board.snapshot()[0].x, board.snapshot()[0].y) == (5, 6)

    def test_sweep_removes_only_stale(self):
        board = CursorBoard(stale_seconds=15)
        board.upsert(CursorState("idle", "Idle", "#000", 0, 0, last_active=100, gallery_slug=SLUG))
        board.upsert(CursorState("busy", "Busy", "#000", 0, 0, last_active=110, gallery_slug=SLUG))

        assert board.sweep(now=115) == []
        assert board.sweep(now=115.5) == ["idle"]
        assert "idle" not in board
        assert "busy" in board


class TestPresenceHub:
    def test_join_is_idempotent_per_socket(self, published):
        hub = PresenceHub(stale_seconds=15, sweep_seconds=5)
        socket = FakeSocket()

        async def scenario():
            assert await hub.join(SLUG, socket, _member("alice")) is True
            assert await hub.join(SLUG, socket, _member("alice")) is False

        run(scenario())
        assert [m.user_id for m in hub.roster(SLUG)] == ["alice"]
        assert socket.types() == ["presence-state"]
        assert [e for e, _ in published.events(f"presence-gallery-{SLUG}")] == ["member-added"]

    def test_second_tab_is_not_a_new_member(self):
        hub = PresenceHub()
        tab1, tab2, observer = FakeSocket(), FakeSocket(), FakeSocket()

        async def scenario():
            await hub.join(SLUG, observer, _member("bob"))
            await hub.join(SLUG, tab1, _member("alice"))
            assert await hub.join(SLUG, tab2, _member("alice")) is False
            assert await hub.leave(SLUG, tab1) is False
            assert [m.user_id for m in hub.roster(SLUG)] == ["bob", "alice"]
            assert await hub.leave(SLUG, tab2) is True

        run(scenario())
        assert [m.user_id for m in hub.roster(SLUG)] == ["bob"]
        assert observer.types().count("member-added") == 1
        assert observer.types()[-1] == "member-removed"

    def test_cursor_updates_are_relayed_to_others(self):
        hub = PresenceHub()
        alice, bob = FakeSocket(), FakeSocket()

        async def scenario():
            await hub.join(SLUG, alice, _member("alice"))
            await hub.join(SLUG, bob, _member("bob"))
            await hub.update_cursor(SLUG, alice, 10, 20, now=100)
            await hub.update_cursor(SLUG, alice, 30, 40, now=101)

        run(scenario())
        updates = [m for m in bob.sent if m["type"] == "cursor-update"]
        assert [(u["x"], u["y"]) for u in updates] == [(10, 20), (30, 40)]
        assert updates[-1]["id"] == "alice"
        assert updates[-1]["gallerySlug"] == SLUG
        assert updates[-1]["lastActive"] == 101_000
        assert "cursor-update" not in alice.types()
        assert [(c.user_id, c.x) for c in hub.cursors(SLUG)] == [("alice", 30)]

    def test_cursor_from_socket_outside_room_is_ignored(self):
        hub = PresenceHub()
        assert run(hub.update_cursor(SLUG, FakeSocket(), 1, 1)) is None
        assert hub.cursors(SLUG) == []

    def test_stale_cursor_disappears_without_leave(self):
        hub = PresenceHub(stale_seconds=15, sweep_seconds=5)
        alice, bob = FakeSocket(), FakeSocket()

        async def scenario():
            await hub.join(SLUG, alice, _member("alice"))
            await hub.join(SLUG, bob, _member("bob"))
            await hub.update_cursor(SLUG, alice, 1, 1, now=100)
            await hub.update_cursor(SLUG, bob, 2, 2, now=110)
            return await hub.sweep(now=116)

        assert run(scenario()) == {SLUG: ["alice"]}
        assert [c.user_id for c in hub.cursors(SLUG)] == ["bob"]
        # Membership is independent of cursor staleness.
        assert {m.user_id for m in hub.roster(SLUG)} == {"alice", "bob"}
        assert {"type": "cursor-removed", "id": "alice"} in bob.sent

    def test_leave_clears_cursor_and_membership(self):
        hub = PresenceHub()
        alice, bob = FakeSocket(), FakeSocket()

        async def scenario():
            await hub.join(SLUG, alice, _member("alice"))
            await hub.join(SLUG, bob, _member("bob"))
            await hub.update_cursor(SLUG, alice, 1, 1)
            await hub.leave_all(alice)

        run(scenario())
        assert hub.cursors(SLUG) == []
        assert [m.user_id for m in hub.roster(SLUG)] == ["bob"]
        assert {"type": "cursor-removed", "id": "alice"} in bob.sent

    def test_failed_socket_is_dropped(self):
        hub = PresenceHub()
        alice, broken = FakeSocket(), FakeSocket()

        async def scenario():
            await hub.join(SLUG, broken, _member("bob"))
            broken.fail = True
            await hub.join(SLUG, alice, _member("alice"))

        run(scenario())
        assert [m.user_id for m in hub.roster(SLUG)] == ["alice"]


class TestPresenceSocket:
    def test_join_ping_and_cursor_relay(self, client, make_token, make_gallery, grant):
        gallery = make_gallery("user_owner")
        grant(gallery, "user_friend", "View")
        owner_url = f"/api/ws/galleries/{gallery.slug}?token={make_token('user_owner', name='Olive Owner')}"
        friend_url = f"/api/ws/galleries/{gallery.slug}?token={make_token('user_friend', name='Fran Friend')}"

        with client.websocket_connect(owner_url) as owner:
            owner.send_json({"type": "join-room"})
            state = owner.receive_json()
            assert state["type"] == "presence-state"
            assert [m["name"] for m in state["members"]] == ["Olive Owner"]

            with client.websocket_connect(friend_url) as friend:
                friend.send_json({"type": "join-room"})
                assert friend.receive_json()["type"] == "presence-state"
                joined = owner.receive_json()
                assert joined["type"] == "member-added"
                assert joined["member"]["id"] == "user_friend"

                friend.send_json({"type": "cursor-update", "x": 12.5, "y": 50})
                cursor = owner.receive_json()
                assert cursor["type"] == "cursor-update"
                assert (cursor["id"], cursor["x"], cursor["y"]) == ("user_friend", 12.5, 50)

                friend.send_json({"type": "ping"})
                assert friend.receive_json() == {"type": "pong"}

                friend.send_json({"type": "dance"})
                assert friend.receive_json()["type"] == "error"

                friend.send_json({"type": "leave-room"})
                assert owner.receive_json() == {"type": "cursor-removed", "id": "user_friend"}
                removed = owner.receive_json()
                assert removed["type"] == "member-removed"
                assert removed["member"]["id"] == "user_friend"

            assert [m.user_id for m in presence_hub.roster(gallery.slug)] == ["user_owner"]
            owner.send_json({"type": "leave-room"})
            owner.send_json({"type": "ping"})
            assert owner.receive_json() == {"type": "pong"}
            assert presence_hub.roster(gallery.slug) == []

    def test_stranger_is_refused(self, client, make_token, make_gallery):
        gallery = make_gallery("user_owner")
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(
                f"/api/ws/galleries/{gallery.slug}?token={make_token('user_eve')}"
            ) as ws:
                ws.receive_json()

    def test_bad_token_is_refused(self, client, make_gallery):
        gallery = make_gallery("user_owner", is_public=True)
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/api/ws/galleries/{gallery.slug}?token=garbage") as ws:
                ws.receive_json()
