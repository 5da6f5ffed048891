"""User-chosen sync settings that outlive the process."""

import logging
from typing import TYPE_CHECKING

from .cursor_store import CursorStore

if TYPE_CHECKING:
    from ..config import SyncConfig

logger = logging.getLogger(__name__)


class SyncPreferences:
    """Persists the sync settings a user can change at runtime.

    Stored next to the cursor in the ``sync_state`` table. Values saved here
    take precedence over the config file on the next start.
    """

    ENABLED_KEY = "auto_sync_enabled"
    INTERVAL_KEY = "sync_interval_hours"
    ONLY_WIFI_KEY = "sync_only_wifi"

    def __init__(self, state: CursorStore):
        self._state = state

    def load_into(self, settings: "SyncConfig") -> bool:
        """Overlay saved values onto ``settings``.

        Returns:
            True if any saved value was found.
        """
        enabled = self._state.get_value(self.ENABLED_KEY)
        interval = self._state.get_value(self.INTERVAL_KEY)
        only_wifi = self._state.get_value(self.ONLY_WIFI_KEY)

        if enabled is not None:
            settings.enabled = enabled == "true"
        if interval is not None:
            try:
                settings.interval_hours = int(interval)
            except ValueError:
                logger.warning(f"Ignoring saved sync interval {interval!r}")
        if only_wifi is not None:
            settings.only_wifi = only_wifi == "true"

        found = any(v is not None for v in (enabled, interval, only_wifi))
        if found:
            logger.debug(
                f"Loaded saved sync settings: enabled={settings.enabled}, "
                f"interval={settings.interval_hours}h, only_wifi={settings.only_wifi}"
            )
        return found

    def save(self, settings: "SyncConfig") -> None:
        self._state.set_value(self.ENABLED_KEY, "true" if settings.enabled else "false")
        self._state.set_value(self.INTERVAL_KEY, str(settings.interval_hours))
        self._state.set_value(self.ONLY_WIFI_KEY, "true" if settings.only_wifi else "false")
        logger.info("Sync settings saved")
