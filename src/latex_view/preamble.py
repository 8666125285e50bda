"""Macro and document preamble text shared by all engines."""

import re

from latex_view.config import EngineConfig

_ARGUMENT = re.compile(r"#([1-9])")

STANDALONE_TEMPLATE = """\
\\documentclass[varwidth,border=2pt]{{standalone}}
{packages}
{macros}
\\begin{{document}}
{body}
\\end{{document}}
"""


def macro_arity(body: str) -> int:
    """Highest ``#n`` placeholder used in *body* (0 when there is none)."""
    return max((int(n) for n in _ARGUMENT.findall(body)), default=0)


def macro_definitions(macros: dict[str, str]) -> str:
    r"""Render *macros* as ``\def`` lines.

    ``\def`` is understood by both TeX and MathJax and silently replaces an
    existing definition, so user macros may shadow built-in commands.
    """
    lines = []
    for name, body in macros.items():
        params = "".join(f"#{i}" for i in range(1, macro_arity(body) + 1))
        lines.append(f"\\def\\{name}{params}{{{body}}}")
    return "\n".join(lines)


def latex_document(body: str, config: EngineConfig) -> str:
    """Build a complete ``standalone`` document around *body*."""
    packages = "\n".join(f"\\usepackage{{{pkg}}}" for pkg in config.packages)
    return STANDALONE_TEMPLATE.format(
        packages=packages,
        macros=macro_definitions(config.macros),
        body=body,
    )
