"""Package-wide defaults.

Public functions accept explicit keyword arguments; the values here are only
used when those arguments are left as ``None``.  A few can be overridden from
the environment so hosts can tune behaviour without code changes.
"""

from __future__ import annotations

import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


STRICT = _env_flag("PDFFORM_STRICT", False)

MAX_RENDER_PIXELS = _env_int("PDFFORM_MAX_RENDER_PIXELS", 40_000_000)

FALLBACK_FONTS: tuple[str, ...] = (
    "DejaVuSans.ttf",
    "LiberationSans-Regular.ttf",
    "Arial.ttf",
    "arial.ttf",
)
if os.environ.get("PDFFORM_FONT"):
    FALLBACK_FONTS = (os.environ["PDFFORM_FONT"],) + FALLBACK_FONTS

DEFAULT_FONT_SIZE = 12.0


def resolve_strict(strict: bool | None) -> bool:
    return STRICT if strict is None else bool(strict)
