"""Realtime event publishing and live gallery presence."""

from __future__ import annotations

from .publisher import RealtimeConnection, gallery_channel, realtime, user_channel

__all__ = ["RealtimeConnection", "gallery_channel", "realtime", "user_channel"]
