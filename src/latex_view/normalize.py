"""Normalisation of loosely formatted LaTeX question text.

Question authors mix several idioms for the same thing: three different ways
of forcing a line break, stray ``\\ `` control spaces, a ``\\textnormal``
command the typesetting engine does not know, and arbitrary whitespace around
alignment markers.  ``normalize`` rewrites all of them into one canonical form
so that the rest of the pipeline only has to deal with a single dialect.

Rules
-----
The rules below run in order; each one is a total ``str -> str`` function and
can be tested on its own.

0. ``\\[ ... \\]``  →  ``$$ ... $$`` and ``\\( ... \\)``  →  ``$ ... $``
1. ``$\\newline$``, ``\\newline`` and ``$\\\\$``  →  ``\\\\``
2. ``\\`` followed by whitespace  →  ``\\\\``
3. ``\\textnormal{x}`` / ``\\textnormal x``  →  ``\\text{x}``
4. ``a&b``  →  ``a & b``   (``\\&`` is a literal ampersand and is left alone)
5. Whitespace runs collapse to one space; the result is trimmed.

Escaping
--------
A backslash only starts a command when it is preceded by an even number of
backslashes.  ``\\\\newline`` is therefore a line break followed by the word
``newline``, not a line break followed by a second one.

Running ``normalize`` on its own output is a no-op.
"""

import re
from typing import Callable


LINE_BREAK = "\\\\"

# Even run of backslashes in front of a command; kept as group 1.
_UNESCAPED = r"(?<!\\)((?:\\\\)*)"


# ── Rule 0: alternative delimiters ────────────────────────────────────────────

_BRACKET_DISPLAY = re.compile(
    _UNESCAPED + r"\\\[(.*?)(?<!\\)((?:\\\\)*)\\\]", flags=re.DOTALL
)
_PAREN_INLINE = re.compile(
    _UNESCAPED + r"\\\((.*?)(?<!\\)((?:\\\\)*)\\\)", flags=re.DOTALL
)


def canonicalize_delimiters(text: str) -> str:
    """Rewrite ``\\[ ... \\]`` and ``\\( ... \\)`` into dollar-sign notation.

    Whitespace immediately inside the delimiters is preserved so that
    ``\\( x \\)`` becomes ``$ x $`` rather than ``$x$``.
    """
    text = _BRACKET_DISPLAY.sub(
        lambda m: f"{m.group(1)}$${m.group(2)}{m.group(3)}$$", text
    )
    return _PAREN_INLINE.sub(
        lambda m: f"{m.group(1)}${m.group(2)}{m.group(3)}$", text
    )


# ── Rule 1: explicit newline idioms ───────────────────────────────────────────

# $\newline$, $\\$ and $\ $: a line break wrapped in its own math span.
_DELIMITED_BREAK = re.compile(
    _UNESCAPED + r"\$\s*(?:\\newline(?![A-Za-z])|\\\\|\\(?=\s))\s*\$"
)
_BARE_NEWLINE = re.compile(_UNESCAPED + r"\\newline(?![A-Za-z])")


def collapse_newline_idioms(text: str) -> str:
    """Replace every explicit newline idiom with the canonical ``\\\\`` marker.

    Collapsing ``$$\\newline$$`` leaves ``$\\\\$`` behind, which is itself an
    idiom, so the substitution repeats until nothing changes.  Every pass
    shortens the string, which bounds the loop.
    """
    previous = None
    while text != previous:
        previous = text
        text = _DELIMITED_BREAK.sub(lambda m: m.group(1) + LINE_BREAK, text)
        text = _BARE_NEWLINE.sub(lambda m: m.group(1) + LINE_BREAK, text)
    return text


# ── Rule 2: backslash before whitespace ───────────────────────────────────────

_BACKSLASH_SPACE = re.compile(_UNESCAPED + r"\\(?=\s)")


def fix_backslash_whitespace(text: str) -> str:
    """Treat a lone backslash in front of whitespace as a mistyped ``\\\\``."""
    return _BACKSLASH_SPACE.sub(lambda m: m.group(1) + LINE_BREAK, text)


# ── Rule 3: plain-text command ────────────────────────────────────────────────

_PLAIN_TEXT_BRACED = re.compile(_UNESCAPED + r"\\textnormal\s*\{")
_PLAIN_TEXT_BARE = re.compile(_UNESCAPED + r"\\textnormal\s+([^\s{}\\$&]+)")


def rewrite_plain_text_command(text: str) -> str:
    """Rewrite ``\\textnormal`` into ``\\text``, bracing a bare argument."""
    text = _PLAIN_TEXT_BRACED.sub(lambda m: m.group(1) + "\\text{", text)
    return _PLAIN_TEXT_BARE.sub(
        lambda m: f"{m.group(1)}\\text{{{m.group(2)}}}", text
    )


# ── Rule 4: alignment markers ─────────────────────────────────────────────────

_ALIGNMENT = re.compile(r"(\\*)(\s*)&\s*")


def _space_alignment(match: re.Match) -> str:
    run, gap = match.group(1), match.group(2)
    if len(run) % 2 == 1 and not gap:
        return match.group(0)  # \& is a literal ampersand
    return f"{run} & "


def space_alignment_markers(text: str) -> str:
    """Give every unescaped ``&`` exactly one space on each side."""
    return _ALIGNMENT.sub(_space_alignment, text)


# ── Rule 5: whitespace ────────────────────────────────────────────────────────


def compress_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


# ── Public API ─────────────────────────────────────────────────────────────────

RULES: tuple[Callable[[str], str], ...] = (
    canonicalize_delimiters,
    collapse_newline_idioms,
    fix_backslash_whitespace,
    rewrite_plain_text_command,
    space_alignment_markers,
    compress_whitespace,
)


def normalize(text: str) -> str:
    """Run every rule in ``RULES`` over *text*, in order."""
    for rule in RULES:
        text = rule(text)
    return text
