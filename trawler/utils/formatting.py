import re

SIZE_PATTERN = re.compile(r"^([\d.]+)\s*(B|KB|MB|GB|TB)$", re.IGNORECASE)
SIZE_UNITS = ["b", "kb", "mb", "gb", "tb"]


def format_bytes(bytes_value):
    if bytes_value is None:
        return "0 B"

    bytes_value = float(bytes_value)

    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if bytes_value < 1024.0:
            return f"{bytes_value:.1f} {unit}"
        bytes_value /= 1024.0
    return f"{bytes_value:.1f} PB"


def size_to_bytes(size_str: str) -> int:
    """Parse sizes such as "1.5 GB". Anything unreadable counts as 0 bytes."""
    if not size_str:
        return 0

    match = SIZE_PATTERN.match(size_str.strip())
    if not match:
        return 0

    try:
        value = float(match.group(1))
    except ValueError:
        return 0

    multiplier = 1024 ** SIZE_UNITS.index(match.group(2).lower())
    return int(value * multiplier)


def format_speed(bytes_per_second) -> str:
    speed = float(bytes_per_second or 0)
    if speed <= 0:
        return "0 B/s"

    units = ["B/s", "KB/s", "MB/s", "GB/s"]
    unit_index = 0
    while speed >= 1024 and unit_index < len(units) - 1:
        speed /= 1024
        unit_index += 1

    return f"{speed:.1f} {units[unit_index]}"


def format_eta(remaining_bytes: int, bytes_per_second: int) -> str:
    if bytes_per_second <= 0 or remaining_bytes <= 0:
        return "∞"

    seconds = round(remaining_bytes / bytes_per_second)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"

    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours}h {minutes}m"
