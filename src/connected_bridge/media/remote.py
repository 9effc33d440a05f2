"""Read the phone's media player state through the MPRIS-remote plugin."""

from __future__ import annotations

import logging

from connected_bridge.bus.proxies import ProxyFactory
from connected_bridge.exceptions import BusError
from connected_bridge.media.models import MediaInfo

logger = logging.getLogger(__name__)


async def fetch_media_info(factory: ProxyFactory, device_id: str, request_players: bool = False) -> MediaInfo | None:
    """Snapshot the selected player, or None when the phone reports no players.

    Periodic polling reads properties only; pass ``request_players`` when a
    media view first opens to ask the phone for a fresh player list.

    Raises:
        PathError: ``device_id`` is not a valid path component.
        BusError: the plugin is unavailable.
    """
    remote = factory.mprisremote(device_id)
    if request_players:
        try:
            await remote.request_player_list()
        except BusError as e:
            logger.warning(f"Failed to request player list from {device_id}: {e}")

    players = [str(p) for p in await remote.player_list()]
    if not players:
        logger.debug(f"No media players on {device_id}")
        return None

    current = await remote.get_property_or("player", "") or players[0]
    return MediaInfo(
        players=players,
        current_player=current,
        is_playing=bool(await remote.get_property_or("isPlaying", False)),
        volume=max(0, min(100, int(await remote.get_property_or("volume", 0)))),
        position_ms=int(await remote.get_property_or("position", 0)),
        length_ms=int(await remote.get_property_or("length", 0)),
        title=await remote.get_property_or("title", ""),
        artist=await remote.get_property_or("artist", ""),
        album=await remote.get_property_or("album", ""),
        can_seek=bool(await remote.get_property_or("canSeek", False)),
        # The plugin does not expose these; assume the player supports them.
        can_next=True,
        can_previous=True,
    )
