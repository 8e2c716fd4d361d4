"""Snapshot key derivation: stable object keys for (test, browser, platform)."""

from __future__ import annotations

import hashlib
import re

SEPARATOR = "_"
KEY_PREFIX = "baselines"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")
_REPEATED_SEPARATOR = re.compile(f"{SEPARATOR}+")


def sanitize_name(name: str) -> str:
    """Map an arbitrary string onto ``[A-Za-z0-9._-]+``.

    Unsafe characters become ``_``, runs of ``_`` collapse and the result is
    stripped of leading/trailing ``_``. A name with nothing usable left (or
    only dots, which would be a path segment) is replaced by a digest of the
    raw name so the mapping stays total and deterministic.
    """
    cleaned = _REPEATED_SEPARATOR.sub(SEPARATOR, _UNSAFE.sub(SEPARATOR, name)).strip(SEPARATOR)
    if not cleaned.strip("."):
        digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:12]
        return f"story-{digest}"
    return cleaned


def derive_key(test_name: str, browser: str, platform: str) -> str:
    """Return ``baselines/{platform}/{browser}/{name}.png``."""
    return (
        f"{KEY_PREFIX}/{sanitize_name(platform)}/{sanitize_name(browser)}/"
        f"{sanitize_name(test_name)}.png"
    )

