"""Delimiter wrapping and the full preprocessing pipeline.

``preprocess`` is the single entry point used by the render controller:

    raw text → normalize → detect_mode (when the mode is "auto") → wrap

``fallback_text`` is the inverse used when the engine cannot typeset the
result: it strips the delimiters again and turns line-break markers into
real newlines.
"""

import re
from typing import Optional, Union

from latex_view.detection import MathMode, detect_mode, is_delimited
from latex_view.normalize import LINE_BREAK, normalize

AUTO = "auto"

DISPLAY_DELIMITERS = ("$$", "$$")
INLINE_DELIMITERS = ("$", "$")

RequestedMode = Union[MathMode, str, None]


def resolve_mode(mode: RequestedMode) -> Optional[MathMode]:
    """Turn a requested mode into a ``MathMode``, or ``None`` for auto-detection.

    Raises ``ValueError`` for names that are neither a ``MathMode`` value nor
    ``"auto"``.
    """
    if mode is None or mode == AUTO:
        return None
    return MathMode(mode)


def wrap(text: str, mode: MathMode) -> str:
    """Enclose *text* in the delimiter pair for *mode*.

    Already delimited text is returned unchanged whatever the requested mode,
    which makes ``wrap`` idempotent.  Empty text stays empty.
    """
    if not text or mode is MathMode.PRE_WRAPPED or is_delimited(text):
        return text
    opening, closing = DISPLAY_DELIMITERS if mode is MathMode.DISPLAY else INLINE_DELIMITERS
    return f"{opening}{text}{closing}"


def preprocess(raw_text: str, mode: RequestedMode = AUTO, *, advanced: bool = True) -> str:
    """Run the whole preprocessing pipeline over *raw_text*.

    With ``advanced=False`` normalisation and mode detection are skipped and
    the text is only guaranteed to carry delimiters (auto falls back to
    inline).
    """
    requested = resolve_mode(mode)
    if not advanced:
        return wrap(raw_text, requested or MathMode.INLINE)
    text = normalize(raw_text)
    return wrap(text, requested or detect_mode(text))


# ── Fallback rendering ─────────────────────────────────────────────────────────

_FALLBACK_TOKENS = re.compile(r"\\\\|\\\$|\$\$|\$|\\\[|\\\]|\\\(|\\\)")


def _fallback_token(match: re.Match) -> str:
    token = match.group(0)
    if token == LINE_BREAK:
        return "\n"
    if token == "\\$":
        return "$"  # an escaped dollar is content, not a delimiter
    return ""


def fallback_text(text: str) -> str:
    """Degrade wrapped markup into plain text for display without an engine."""
    plain = _FALLBACK_TOKENS.sub(_fallback_token, text)
    return "\n".join(line.strip() for line in plain.split("\n")).strip()
