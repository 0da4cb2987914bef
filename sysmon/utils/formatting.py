"""Display formatting helpers.

Converts normalized snapshot values into the strings shown by the terminal
renderer and written to the history log.
"""

from typing import Union


def format_uptime(seconds: float) -> str:
    """Uptime in the ``uptime -p`` style.

    Example:
        >>> format_uptime(93784)
        'up 1 day, 2 hours, 3 minutes'
        >>> format_uptime(30)
        'up 0 minutes'
    """
    seconds = max(int(seconds), 0)
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    parts = []
    for amount, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if amount:
            parts.append(f"{amount} {unit}{'s' if amount != 1 else ''}")
    if not parts:
        parts.append("0 minutes")
    return "up " + ", ".join(parts)


def format_temperature(value: Union[int, float, str], unit: str = "C") -> str:
    """Temperature with unit, or the value unchanged when it is a sentinel.

    Example:
        >>> format_temperature(45.0)
        '45.0°C'
        >>> format_temperature("N/A")
        'N/A'
    """
    if isinstance(value, str):
        return value
    if unit.upper() == "F":
        return f"{value * 9 / 5 + 32:.1f}°F"
    return f"{value:.1f}°C"


def usage_bar(percent: float, width: int = 40, fill: str = "#", empty: str = "-") -> str:
    """Fixed-width text bar for a 0-100 percentage, without brackets.

    Example:
        >>> usage_bar(50, width=10)
        '#####-----'
    """
    percent = min(max(percent, 0), 100)
    filled = int(percent * width / 100)
    return fill * filled + empty * (width - filled)


def sanitize_topic(name: str) -> str:
    """Lowercase MQTT-safe topic segment.

    Example:
        >>> sanitize_topic("Living Room/PC #2")
        'living_room_pc_2'
    """
    cleaned = name.lower().replace(" ", "_")
    for char in "/+#$\\?":
        cleaned = cleaned.replace(char, "_")
    while "__" in cleaned:
        cleaned = cleaned.replace("__", "_")
    return cleaned.strip("_")
