"""Shared constants used across the application."""

import re

# Canonical music categories users pick from at registration
MUSIC_CATEGORIES = [
    "Pop",
    "Rock",
    "Hip Hop",
    "R&B",
    "Jazz",
    "Classical",
    "Electronic",
    "Country",
    "Folk",
    "Reggae",
    "Blues",
    "Metal",
]

REQUIRED_CATEGORY_COUNT = 3

ROLES = frozenset({"artist", "listener"})

GENDERS = frozenset({"male", "female", "other"})

MIN_AGE = 5
MAX_AGE = 120

# Permissive international format: leading + or digit, then digits, spaces or dashes
PHONE_PATTERN = re.compile(r"^[+\d][\d\s-]{6,19}$")
