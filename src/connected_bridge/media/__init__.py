"""Phone media player control (MPRIS remote)."""

from connected_bridge.media.models import MediaInfo
from connected_bridge.media.remote import fetch_media_info

__all__ = ["MediaInfo", "fetch_media_info"]
