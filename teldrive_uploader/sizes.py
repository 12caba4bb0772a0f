"""Human-readable size strings ("500MB", "1.5 GB", "64 bytes") to byte counts."""

import re

# KB and MB are binary; GB is 1000 * MiB. Callers depend on this exact mix.
_UNITS = {
    "b": 1,
    "byte": 1,
    "bytes": 1,
    "kb": 1024,
    "kilobyte": 1024,
    "kilobytes": 1024,
    "mb": 1024 * 1024,
    "megabyte": 1024 * 1024,
    "megabytes": 1024 * 1024,
    "gb": 1000 * 1024 * 1024,
    "gigabyte": 1000 * 1024 * 1024,
    "gigabytes": 1000 * 1024 * 1024,
}

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([a-z]+)$", re.IGNORECASE)


class ParseError(ValueError):
    """Raised when a size string does not match ``<number><unit>``."""


def parse_size(text: str) -> int:
    match = _SIZE_RE.match(text.strip())
    if not match:
        raise ParseError(f"invalid size format: {text!r}")

    number, unit = match.group(1), match.group(2).lower()
    if unit not in _UNITS:
        raise ParseError(f"unsupported size unit {unit!r} in {text!r}")

    return int(float(number) * _UNITS[unit])


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} TiB"
