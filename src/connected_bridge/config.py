"""Runtime options that gate device, SMS and notification behavior."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass

from connected_bridge.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CONNECTED_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    """Immutable option snapshot; build a changed copy with ``replace``.

    ``show_battery_percentage`` is presentation-only: devices always carry
    their battery level and the view decides whether to display it.
    """

    show_battery_percentage: bool = True
    show_offline_devices: bool = True
    forward_notifications: bool = True
    messages_per_page: int = 10
    sms_notifications: bool = True
    sms_notification_show_content: bool = True
    sms_notification_show_sender: bool = True
    call_notifications: bool = True
    call_notification_show_number: bool = True
    call_notification_show_name: bool = True
    file_notifications: bool = True

    @classmethod
    def option_names(cls) -> list[str]:
        return [f.name for f in dataclasses.fields(cls)]

    def replace(self, **changes) -> Config:
        """Return a new snapshot with ``changes`` applied."""
        unknown = set(changes) - set(self.option_names())
        if unknown:
            raise InvalidInputError(f"Unknown config option(s): {', '.join(sorted(unknown))}")
        if "messages_per_page" in changes:
            _check_page_size(changes["messages_per_page"])
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Config:
        """Defaults overridden by ``CONNECTED_<OPTION>`` environment variables.

        Invalid values are logged and ignored so a typo never blocks startup.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for field in dataclasses.fields(cls):
            raw = env.get(ENV_PREFIX + field.name.upper())
            if raw is None:
                continue
            try:
                if field.type in (int, "int"):
                    value: object = int(raw)
                    _check_page_size(value)
                else:
                    value = _parse_bool(raw)
            except (ValueError, InvalidInputError) as e:
                logger.warning(f"Ignoring {ENV_PREFIX}{field.name.upper()}={raw!r}: {e}")
                continue
            overrides[field.name] = value
        config = cls(**overrides)
        logger.debug(f"Loaded config: {config}")
        return config


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _check_page_size(value) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise InvalidInputError(f"messages_per_page must be a positive integer, got {value!r}")
