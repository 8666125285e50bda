"""MathJax typesetting engine driven through mathjax-node-cli's ``tex2svg``."""

import asyncio
import html
import re
import shutil
from typing import Optional

from latex_view.config import EngineConfig
from latex_view.engines.base import (
    BaseEngine,
    EngineUnavailableError,
    MalformedMarkupError,
    run_command,
)
from latex_view.normalize import LINE_BREAK
from latex_view.preamble import macro_definitions

# Display pairs come first so $$ is never read as two empty inline spans.
_MATH_SPAN = re.compile(
    r"\$\$(?P<d1>.+?)\$\$|\\\[(?P<d2>.+?)\\\]|\$(?P<i1>.+?)\$|\\\((?P<i2>.+?)\\\)",
    flags=re.DOTALL,
)
_STRAY_DOLLAR = re.compile(r"(?<!\\)\$")

# MathJax reports TeX errors inside the SVG instead of failing the process.
_ERROR_MARKERS = ("data-mjx-error", "merror")


def split_segments(source: str) -> list[tuple[str, str]]:
    """Split *source* into ``(kind, content)`` pairs.

    ``kind`` is ``"text"``, ``"inline"`` or ``"display"``.  Raises
    ``MalformedMarkupError`` when a delimiter is left unbalanced.
    """
    segments: list[tuple[str, str]] = []
    pos = 0
    for m in _MATH_SPAN.finditer(source):
        if m.start() > pos:
            segments.append(("text", source[pos:m.start()]))
        if m.group("d1") is not None or m.group("d2") is not None:
            segments.append(("display", m.group("d1") or m.group("d2")))
        else:
            segments.append(("inline", m.group("i1") or m.group("i2")))
        pos = m.end()
    if pos < len(source):
        segments.append(("text", source[pos:]))

    for kind, content in segments:
        if kind == "text" and _STRAY_DOLLAR.search(content):
            raise MalformedMarkupError("Unbalanced $ delimiter")
    return segments


class MathJaxEngine(BaseEngine):
    name = "mathjax"

    def __init__(self, command: str = "tex2svg", config: Optional[EngineConfig] = None) -> None:
        self.command = command
        self.config = config or EngineConfig()

    async def load(self) -> None:
        if shutil.which(self.command) is None:
            raise EngineUnavailableError(f"{self.command} not found on PATH")

    async def typeset(self, source: str) -> str:
        segments = split_segments(source)
        rendered = await asyncio.gather(
            *(self._render_segment(kind, content) for kind, content in segments)
        )
        return "".join(rendered)

    async def _render_segment(self, kind: str, content: str) -> str:
        if kind == "text":
            return html.escape(content).replace(LINE_BREAK, "<br/>")

        tex = content.strip()
        macros = macro_definitions(self.config.macros)
        if macros:
            tex = f"{macros} {tex}"

        args = [self.command]
        if kind == "inline":
            args.append("--inline")
        # "--" ends option parsing so TeX starting with "-" is not read as a flag.
        args.extend(["--", tex])

        code, out, err = await run_command(args)
        if code != 0:
            raise MalformedMarkupError(err.strip() or f"{self.command} exited with {code}")
        if any(marker in out for marker in _ERROR_MARKERS):
            raise MalformedMarkupError(f"MathJax could not typeset {content.strip()!r}")

        svg = out.strip()
        if kind == "display":
            return f'<div class="math-display">{svg}</div>'
        return f'<span class="math-inline">{svg}</span>'
