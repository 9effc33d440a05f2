"""Fire-and-forget device actions: ping, ring, share, pairing, clipboard, media."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Awaitable

from connected_bridge.bus.proxies import ProxyFactory
from connected_bridge.events import ActionKind, ActionResult
from connected_bridge.exceptions import BridgeError

logger = logging.getLogger(__name__)

MEDIA_ACTIONS = ("Play", "Pause", "PlayPause", "Stop", "Next", "Previous")


class ActionDispatcher:
    """Runs one device action and reports a tagged ``ActionResult``.

    Failures never raise out of these coroutines; they come back as
    ``ok=False`` results carrying the error text.
    """

    def __init__(self, factory: ProxyFactory):
        self.factory = factory

    async def _run(
        self,
        kind: ActionKind,
        device_id: str,
        call: Awaitable[None],
        success: str,
        failure: str,
    ) -> ActionResult:
        try:
            await call
        except BridgeError as e:
            logger.error(f"{failure} ({device_id}): {e}")
            return ActionResult(action=kind, ok=False, message=f"{failure}: {e}", device_id=device_id)
        logger.info(f"{kind.value} on {device_id}: {success}")
        return ActionResult(action=kind, ok=True, message=success, device_id=device_id)

    async def _guarded(self, kind: ActionKind, device_id: str, build, success: str, failure: str) -> ActionResult:
        # Proxy construction validates ids; report that as a failed action too.
        try:
            call = build()
        except BridgeError as e:
            return ActionResult(action=kind, ok=False, message=f"{failure}: {e}", device_id=device_id)
        return await self._run(kind, device_id, call, success, failure)

    async def ping(self, device_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.PING, device_id,
            lambda: self.factory.ping(device_id).send_ping(),
            "Ping sent", "Failed to send ping",
        )

    async def ring(self, device_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.RING, device_id,
            lambda: self.factory.findmyphone(device_id).ring(),
            "Ringing device", "Failed to ring device",
        )

    async def share_file(self, device_id: str, path: str | Path) -> ActionResult:
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_file():
            return ActionResult(
                action=ActionKind.SHARE_FILE, ok=False,
                message=f"File not found: {path}", device_id=device_id,
            )
        return await self._guarded(
            ActionKind.SHARE_FILE, device_id,
            lambda: self.factory.share(device_id).share_url(f"file://{resolved}"),
            f"Sent {resolved.name}", "Failed to share file",
        )

    async def share_text(self, device_id: str, text: str) -> ActionResult:
        if not text.strip():
            return ActionResult(
                action=ActionKind.SHARE_TEXT, ok=False,
                message="Nothing to share", device_id=device_id,
            )
        return await self._guarded(
            ActionKind.SHARE_TEXT, device_id,
            lambda: self.factory.share(device_id).share_text(text),
            "Text shared", "Failed to share text",
        )

    async def send_clipboard(self, device_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.CLIPBOARD, device_id,
            lambda: self.factory.clipboard(device_id).send_clipboard(),
            "Clipboard sent to device", "Failed to send clipboard",
        )

    async def dismiss_notification(self, device_id: str, notification_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.DISMISS_NOTIFICATION, device_id,
            lambda: self.factory.notification(device_id, notification_id).dismiss(),
            "Notification dismissed", "Failed to dismiss",
        )

    # Pairing

    async def request_pair(self, device_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.REQUEST_PAIR, device_id,
            lambda: self.factory.device(device_id).request_pair(),
            "Pairing request sent. Please accept on your device.", "Failed to request pairing",
        )

    async def unpair(self, device_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.UNPAIR, device_id,
            lambda: self.factory.device(device_id).unpair(),
            "Device unpaired successfully.", "Failed to unpair",
        )

    async def accept_pairing(self, device_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.ACCEPT_PAIRING, device_id,
            lambda: self.factory.device(device_id).accept_pairing(),
            "Pairing accepted.", "Failed to accept pairing",
        )

    async def reject_pairing(self, device_id: str) -> ActionResult:
        return await self._guarded(
            ActionKind.REJECT_PAIRING, device_id,
            lambda: self.factory.device(device_id).reject_pairing(),
            "Pairing rejected/cancelled.", "Failed to reject pairing",
        )

    # Media

    async def media_action(self, device_id: str, action: str) -> ActionResult:
        if action not in MEDIA_ACTIONS:
            return ActionResult(
                action=ActionKind.MEDIA_ACTION, ok=False,
                message=f"Unknown media action: {action}", device_id=device_id,
            )
        return await self._guarded(
            ActionKind.MEDIA_ACTION, device_id,
            lambda: self.factory.mprisremote(device_id).send_action(action),
            action, "Media action failed",
        )

    async def set_volume(self, device_id: str, volume: int) -> ActionResult:
        volume = max(0, min(100, int(volume)))
        return await self._guarded(
            ActionKind.MEDIA_VOLUME, device_id,
            lambda: self.factory.mprisremote(device_id).set_volume(volume),
            f"Volume {volume}", "Failed to set volume",
        )

    async def set_position(self, device_id: str, position_ms: int) -> ActionResult:
        if position_ms < 0:
            return ActionResult(
                action=ActionKind.MEDIA_POSITION, ok=False,
                message="Position must not be negative", device_id=device_id,
            )
        return await self._guarded(
            ActionKind.MEDIA_POSITION, device_id,
            lambda: self.factory.mprisremote(device_id).set_position(position_ms),
            "Position set", "Failed to set position",
        )

    async def seek(self, device_id: str, offset_ms: int) -> ActionResult:
        return await self._guarded(
            ActionKind.MEDIA_SEEK, device_id,
            lambda: self.factory.mprisremote(device_id).seek(offset_ms),
            "Seeked", "Failed to seek",
        )

    async def select_player(self, device_id: str, player: str) -> ActionResult:
        return await self._guarded(
            ActionKind.MEDIA_PLAYER, device_id,
            lambda: self.factory.mprisremote(device_id).set_player(player),
            f"Player {player} selected", "Failed to select player",
        )
