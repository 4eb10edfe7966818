"""Parsing of human-readable size strings such as '500', '100 bytes' or '1.5 MB'."""

import re
from typing import List, Tuple

# Pattern -> multiplier. Plain byte counts must be whole numbers.
_SIZE_PATTERNS: List[Tuple[re.Pattern, int]] = [
    (re.compile(r"^(\d+)$"), 1),
    (re.compile(r"^(\d+)\s?bytes?$"), 1),
    (re.compile(r"^(\d+(?:\.\d+)?)\s?Kb$"), 1024),
    (re.compile(r"^(\d+(?:\.\d+)?)\s?MB$"), 1024 * 1024),
]


def parse_size(value: str) -> int:
    """Converts a size string to a number of bytes.

    >>> parse_size("1.5 Kb")
    1536

    Raises:
        ValueError: If the string is not one of the supported forms.
    """
    for pattern, multiplier in _SIZE_PATTERNS:
        match = pattern.match(value)
        if match:
            # Round half up; values are never negative.
            return int(float(match.group(1)) * multiplier + 0.5)
    raise ValueError(f"cannot parse size {value!r}")
