import re
import secrets
from typing import Optional

SLUG_ALPHABET = "abcdefghijklmnopqrstuvwxyz1234567890"
SLUG_TOKEN_LENGTH = 10

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    return _NON_ALNUM.sub("-", text.lower()).strip("-")


def random_token(length: int = SLUG_TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def create_slug(name: str, suffix: Optional[str] = None) -> str:
    """Build a registration link slug: ``<name>[-<suffix>]-<token>``."""
    parts = [slugify(name)]
    if suffix:
        parts.append(slugify(suffix))
    parts.append(random_token())
    return "-".join(part for part in parts if part)
