"""Math mode detection for normalised question text."""

from enum import Enum


class MathMode(str, Enum):
    INLINE = "inline"
    DISPLAY = "display"
    PRE_WRAPPED = "pre-wrapped"


# (open, close) pairs that mark text as already delimited.  $$ is checked
# before $ so that a display block is never mistaken for an inline one.
DELIMITER_PAIRS = (
    ("$$", "$$"),
    ("\\[", "\\]"),
    ("$", "$"),
    ("\\(", "\\)"),
)

BLOCK_ENVIRONMENTS = (
    "array",
    "matrix",
    "pmatrix",
    "bmatrix",
    "Bmatrix",
    "vmatrix",
    "Vmatrix",
    "align",
    "align*",
    "aligned",
    "equation",
    "equation*",
    "gather",
    "gather*",
)

BLOCK_OPERATORS = (
    "\\frac{",
    "\\sum",
    "\\int",
    "\\prod",
    "\\lim",
)

BLOCK_INDICATORS = tuple(
    f"\\begin{{{env}}}" for env in BLOCK_ENVIRONMENTS
) + BLOCK_OPERATORS


def is_delimited(text: str) -> bool:
    """True if *text* starts and ends with one of ``DELIMITER_PAIRS``."""
    for opening, closing in DELIMITER_PAIRS:
        if (
            len(text) >= len(opening) + len(closing)
            and text.startswith(opening)
            and text.endswith(closing)
        ):
            return True
    return False


def detect_mode(text: str) -> MathMode:
    """Classify *text* as pre-wrapped, display or inline math.

    Detection is plain, case-sensitive substring matching against the closed
    ``BLOCK_INDICATORS`` set; no other command influences the result.
    """
    if is_delimited(text):
        return MathMode.PRE_WRAPPED
    if any(indicator in text for indicator in BLOCK_INDICATORS):
        return MathMode.DISPLAY
    return MathMode.INLINE
