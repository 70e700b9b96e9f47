"""Live gallery presence over WebSocket."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from .. import models
from ..auth import decode_token
from ..deps import get_db
from ..errors import BeamError
from ..realtime.presence import Member, presence_hub
from ..roles import load_gallery
from ..services.user_cache import ensure_cached_user

router = APIRouter(tags=["Presence"])
logger = logging.getLogger(__name__)


def member_for(user: models.CachedUser) -> Member:
    return Member(user_id=user.user_id, name=user.display_name, color=user.color, image_url=user.image_url)


@router.websocket("/ws/galleries/{slug}")
async def gallery_presence(
    websocket: WebSocket,
    slug: str,
    token: str,  # JWT token passed as query parameter
    db: Session = Depends(get_db),
):
    """
    WebSocket endpoint for cursors and "who's here" avatars on one gallery.

    Clients connect via: ws://api.example.com/api/ws/galleries/<slug>?token=<jwt_token>
    and send JSON messages: ``join-room``, ``leave-room``, ``cursor-update``
    (``{x, y}``) and ``ping``. Joining again after a reconnect is harmless.
    """
    try:
        user = decode_token(token)
        cached = ensure_cached_user(db, user)
        load_gallery(db, slug, user.id)
    except (HTTPException, BeamError) as e:
        logger.info(f"Presence connection to {slug} refused: {getattr(e, 'detail', e)}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Access denied")
        return

    member = member_for(cached)
    # The session isn't needed once the caller is authorized.
    db.close()

    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
                kind = message["type"]
            except (ValueError, KeyError, TypeError):
                await websocket.send_json({"type": "error", "detail": "Malformed message"})
                continue

            if kind == "join-room":
                await presence_hub.join(slug, websocket, member)
            elif kind == "leave-room":
                await presence_hub.leave(slug, websocket)
            elif kind == "cursor-update":
                try:
                    x, y = float(message["x"]), float(message["y"])
                except (KeyError, TypeError, ValueError):
                    await websocket.send_json({"type": "error", "detail": "cursor-update needs numeric x and y"})
                    continue
                await presence_hub.update_cursor(slug, websocket, x, y)
            elif kind == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                await websocket.send_json({"type": "error", "detail": f"Unknown message type: {kind}"})
    except WebSocketDisconnect:
        logger.info(f"Presence socket for user {member.user_id} on {slug} disconnected")
    except Exception as e:
        logger.error(f"Presence socket error for user {member.user_id} on {slug}: {e}")
    finally:
        await presence_hub.leave_all(websocket)
