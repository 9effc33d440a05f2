"""Data models for the media module."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class MediaInfo:
    """State of the phone's selected media player."""

    players: list[str] = field(default_factory=list)
    current_player: str = ""
    is_playing: bool = False
    volume: int = 0  # 0..100
    position_ms: int = 0
    length_ms: int = 0
    title: str = ""
    artist: str = ""
    album: str = ""
    can_seek: bool = False
    can_next: bool = True
    can_previous: bool = True

    @property
    def has_track(self) -> bool:
        return bool(self.title or self.artist)

    @property
    def progress(self) -> float:
        if self.length_ms <= 0:
            return 0.0
        return max(0.0, min(1.0, self.position_ms / self.length_ms))
