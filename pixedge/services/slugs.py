from __future__ import annotations

import logging
import re
import secrets
import string
import time

from ..errors import InvalidCustomId, SlugTaken

logger = logging.getLogger("pixedge.slugs")

SLUG_MIN_LENGTH = 2
SLUG_MAX_LENGTH = 32
GENERATED_ID_LENGTH = 8
RESERVED_SLUGS = frozenset({"api", "admin", "dashboard", "login", "docs", "upload", "i", "static"})

_ALPHABET = string.ascii_lowercase + string.digits
_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUN_RE = re.compile(r"-{2,}")


def normalize_slug(value) -> str:
    slug = str(value or "").lower().strip()
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _DISALLOWED_RE.sub("", slug)
    slug = _HYPHEN_RUN_RE.sub("-", slug)
    return slug.strip("-")


def validate_slug(slug: str) -> str:
    if not slug:
        raise InvalidCustomId("Custom ID must contain letters, numbers or hyphens")
    if len(slug) < SLUG_MIN_LENGTH:
        raise InvalidCustomId(f"Custom ID must be at least {SLUG_MIN_LENGTH} characters")
    if len(slug) > SLUG_MAX_LENGTH:
        raise InvalidCustomId(f"Custom ID must be at most {SLUG_MAX_LENGTH} characters")
    if slug in RESERVED_SLUGS:
        raise InvalidCustomId(f"Custom ID '{slug}' is reserved")
    return slug


def generate_id(length: int = GENERATED_ID_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def _fit(base: str, suffix: str) -> str:
    room = SLUG_MAX_LENGTH - len(suffix)
    return base[:room].rstrip("-") + suffix


def suggest_alternatives(base: str) -> list[str]:
    stamp = _to_base36(int(time.time() * 1000))[-4:]
    random_suffix = generate_id(3)
    number = secrets.randbelow(1000)
    return [
        _fit(base, f"-{stamp}"),
        _fit(base, f"-{random_suffix}"),
        _fit(base, str(number)),
    ]


class SlugAllocator:
    """Turns an optional vanity ID into a validated, currently unused slug.

    The allocator only reads; reserving the slug happens when the caller
    saves the media record.
    """

    def __init__(self, media) -> None:
        self._media = media

    def allocate(self, custom_id: str | None = None) -> str:
        if custom_id is None or custom_id == "":
            return generate_id()

        slug = validate_slug(normalize_slug(custom_id))
        if self._media.media_exists(slug):
            logger.info("Custom ID %s already taken", slug)
            raise SlugTaken(slug, suggest_alternatives(slug))
        return slug
