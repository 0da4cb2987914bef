"""Battery / power-supply state.

Chain:
    1. termux     ``termux-battery-status`` JSON, regex decode when the JSON is
                  truncated or malformed
    2. sysfs      /sys/class/power_supply/<node> whose type is Battery
    3. psutil     sensors_battery()

When every source fails the snapshot is the sentinel with a short hint
telling the user what to install or grant.
"""

import glob
import logging
import os
from typing import Dict, Optional

import psutil

from sysmon.collectors.base import (
    CollectContext,
    DomainCollector,
    FallbackChain,
    FunctionStrategy,
)
from sysmon.collectors.parsers import (
    parse_termux_battery_json,
    parse_termux_battery_text,
    parse_uevent,
)
from sysmon.core.models import NA, PowerSnapshot
from sysmon.core.result import Failure, FailureKind, Ok, Result, unavailable
from sysmon.utils.normalize import clamp_percent, fixed, safe_number
from sysmon.utils.platform import PlatformProbe, get_probe

logger = logging.getLogger(__name__)

POWER_SUPPLY_GLOB = "/sys/class/power_supply/*"

MOBILE_HINT = (
    "Install termux-api (pkg install termux-api) and the Termux:API app, "
    "then grant it battery permission"
)
PERMISSION_HINT = "Battery nodes are not readable by this user"
NO_BATTERY_HINT = "No battery detected"


def _temperature(value) -> object:
    number = safe_number(value)
    if number is None:
        return NA
    return fixed(number, 1)


def snapshot_from_termux(data: Dict[str, object]) -> PowerSnapshot:
    """Map a termux-battery-status payload onto a PowerSnapshot.

    Example:
        >>> snapshot_from_termux({"percentage": 76, "status": "CHARGING"}).percent
        76
    """
    return PowerSnapshot(
        available=True,
        percent=clamp_percent(safe_number(data.get("percentage"), 0)),
        status=str(data.get("status") or NA),
        health=str(data.get("health") or NA),
        temperature=_temperature(data.get("temperature")),
        plugged=str(data.get("plugged") or NA),
    )


def power_from_termux(ctx: CollectContext) -> Result:
    result = ctx.run(["termux-battery-status"])
    if not result.ok:
        return result
    decoded = parse_termux_battery_json(result.value)
    if not decoded.ok:
        logger.debug(f"Falling back to text decode: {decoded.detail}")
        decoded = parse_termux_battery_text(result.value)
        if not decoded.ok:
            return decoded
    return Ok(snapshot_from_termux(decoded.value))


def _plugged_from_supplies(nodes) -> str:
    """PLUGGED_<TYPE> for the first online Mains/USB supply, else UNPLUGGED."""
    for node in nodes:
        fields = node["fields"]
        if fields.get("TYPE") in ("Mains", "USB", "Wireless") and fields.get("ONLINE") == "1":
            return f"PLUGGED_{fields['TYPE'].upper()}"
    return "UNPLUGGED"


def power_from_sysfs(ctx: CollectContext) -> Result:
    nodes = []
    denied = False
    for path in sorted(glob.glob(ctx.path(POWER_SUPPLY_GLOB))):
        name = os.path.basename(path)
        result = ctx.read(f"/sys/class/power_supply/{name}/uevent")
        if not result.ok:
            if result.kind is FailureKind.CANCELLED:
                return result
            denied = denied or result.kind is FailureKind.PERMISSION
            continue
        fields = parse_uevent(result.value)
        if "TYPE" not in fields:
            kind = ctx.read(f"/sys/class/power_supply/{name}/type")
            if kind.ok:
                fields["TYPE"] = kind.value.strip()
        nodes.append({"name": name, "fields": fields})

    battery = next((node for node in nodes if node["fields"].get("TYPE") == "Battery"), None)
    if battery is None:
        if denied:
            return Failure(FailureKind.PERMISSION, "power_supply uevent not readable")
        return unavailable("no Battery-type power_supply node")

    fields = battery["fields"]
    if "CAPACITY" not in fields:
        capacity = ctx.read_int(f"/sys/class/power_supply/{battery['name']}/capacity")
        if not capacity.ok:
            return capacity
        fields["CAPACITY"] = str(capacity.value)

    # TEMP is reported in tenths of a degree
    temp = safe_number(fields.get("TEMP"))
    return Ok(
        PowerSnapshot(
            available=True,
            percent=clamp_percent(safe_number(fields.get("CAPACITY"), 0)),
            status=fields.get("STATUS", NA).upper(),
            health=fields.get("HEALTH", NA).upper(),
            temperature=fixed(temp / 10, 1) if temp is not None else NA,
            plugged=_plugged_from_supplies(nodes),
        )
    )


def power_from_psutil(ctx: CollectContext) -> Result:
    battery = psutil.sensors_battery()
    if battery is None:
        return unavailable("psutil reports no battery")
    if battery.power_plugged is None:
        plugged, status = NA, NA
    elif battery.power_plugged:
        plugged = "PLUGGED"
        status = "FULL" if battery.percent >= 100 else "CHARGING"
    else:
        plugged, status = "UNPLUGGED", "DISCHARGING"
    return Ok(
        PowerSnapshot(
            available=True,
            percent=clamp_percent(battery.percent),
            status=status,
            plugged=plugged,
        )
    )


class PowerCollector(DomainCollector):
    """Collects battery state; a desktop without a battery gets the sentinel.

    Example:
        >>> power = PowerCollector()
        >>> snap = power.collect(capabilities)
        >>> print(f"{snap.percent}% {snap.status}" if snap.available else snap.hint)
    """

    domain = "power"

    def __init__(self, platform_probe: Optional[PlatformProbe] = None, **kwargs):
        super().__init__(**kwargs)
        self.platform = platform_probe or get_probe()
        self.chain = FallbackChain(
            "power",
            [
                FunctionStrategy("termux", power_from_termux, ("termux_api", "mobile_api")),
                FunctionStrategy("sysfs", power_from_sysfs, ("battery",)),
                FunctionStrategy("psutil", power_from_psutil),
            ],
        )

    def sentinel(self) -> PowerSnapshot:
        return PowerSnapshot()

    def _hint(self, result: Failure) -> str:
        if self.platform.detect().is_mobile:
            return MOBILE_HINT
        if "=permission" in result.detail:
            return PERMISSION_HINT
        return NO_BATTERY_HINT

    def _collect(self, ctx: CollectContext) -> PowerSnapshot:
        result = self.chain.run(ctx)
        if result.ok:
            return result.value
        if result.kind is FailureKind.CANCELLED:
            return self.sentinel()
        logger.debug(f"No battery source: {result.detail}")
        return PowerSnapshot(hint=self._hint(result))
