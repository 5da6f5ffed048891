"""Network and power conditions that gate background sync work.

Reads /sys directly (no psutil dependency). Hosts without these files report
no metered link and no battery, which satisfies every constraint except a
hard "no network" result.
"""

import logging
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# Interface name prefixes that usually mean a metered (cellular) link
METERED_PREFIXES = ("wwan", "ppp", "rmnet", "ccmni", "usb")

LOW_BATTERY_PERCENT = 15


class NetworkType(Enum):
    """Connectivity currently available to the host."""

    NONE = "none"
    METERED = "metered"
    UNMETERED = "unmetered"  # Wi-Fi or wired


class NetworkRequirement(Enum):
    """Connectivity a piece of work needs before it may run."""

    CONNECTED = "connected"  # Any network
    UNMETERED = "unmetered"  # Wi-Fi or wired only

    @classmethod
    def for_settings(cls, only_wifi: bool) -> "NetworkRequirement":
        return cls.UNMETERED if only_wifi else cls.CONNECTED

    def is_satisfied_by(self, network: NetworkType) -> bool:
        if network == NetworkType.NONE:
            return False
        if self == NetworkRequirement.UNMETERED:
            return network == NetworkType.UNMETERED
        return True


class NetworkMonitor:
    """Classifies the host's active network links from /sys/class/net."""

    def __init__(self, sys_net: str | Path = "/sys/class/net"):
        self._sys_net = Path(sys_net)

    def _read(self, path: Path) -> str:
        try:
            return path.read_text().strip()
        except OSError:
            return ""

    def _is_up(self, iface: Path) -> bool:
        state = self._read(iface / "operstate")
        # Some virtual and wireless drivers report "unknown" while passing traffic
        if state == "up":
            return True
        return state == "unknown" and self._read(iface / "carrier") == "1"

    async def current(self) -> NetworkType:
        """Return the best connectivity currently available."""
        if not self._sys_net.exists():
            logger.debug(f"{self._sys_net} not found, assuming unmetered network")
            return NetworkType.UNMETERED

        best = NetworkType.NONE
        for iface in sorted(self._sys_net.iterdir()):
            if iface.name == "lo" or not self._is_up(iface):
                continue
            if iface.name.startswith(METERED_PREFIXES):
                if best == NetworkType.NONE:
                    best = NetworkType.METERED
            else:
                return NetworkType.UNMETERED

        return best


class PowerMonitor:
    """Reports whether the battery is low, from /sys/class/power_supply."""

    def __init__(
        self,
        sys_power: str | Path = "/sys/class/power_supply",
        low_percent: int = LOW_BATTERY_PERCENT,
    ):
        self._sys_power = Path(sys_power)
        self.low_percent = low_percent

    async def battery_low(self) -> bool:
        """True only when running on a battery below the threshold."""
        if not self._sys_power.exists():
            return False

        for supply in self._sys_power.iterdir():
            try:
                if (supply / "type").read_text().strip() != "Battery":
                    continue
                status = (supply / "status").read_text().strip()
                capacity = int((supply / "capacity").read_text().strip())
            except (OSError, ValueError):
                continue

            if status != "Charging" and capacity < self.low_percent:
                return True

        return False
