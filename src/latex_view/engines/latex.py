"""LaTeX + dvisvgm typesetting engine."""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from latex_view.config import EngineConfig
from latex_view.engines.base import (
    BaseEngine,
    EngineError,
    EngineUnavailableError,
    MalformedMarkupError,
    run_command,
)
from latex_view.preamble import latex_document

JOB_NAME = "snippet"


def first_latex_error(log: str) -> str:
    """Pick the first ``! ...`` line out of a LaTeX transcript."""
    for line in log.splitlines():
        if line.startswith("! "):
            return line[2:].strip()
    return "LaTeX exited with an error"


class LatexEngine(BaseEngine):
    name = "latex"

    def __init__(
        self,
        command: str = "latex",
        converter: str = "dvisvgm",
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.command = command
        self.converter = converter
        self.config = config or EngineConfig()

    async def load(self) -> None:
        for tool in (self.command, self.converter):
            if shutil.which(tool) is None:
                raise EngineUnavailableError(f"{tool} not found on PATH")
        code, _out, err = await run_command([self.command, "--version"])
        if code != 0:
            raise EngineUnavailableError(err.strip() or f"{self.command} --version failed")

    async def typeset(self, source: str) -> str:
        if not source.strip():
            return ""

        with tempfile.TemporaryDirectory(prefix="latex-view-") as tmp:
            workdir = Path(tmp)
            tex_path = workdir / f"{JOB_NAME}.tex"
            tex_path.write_text(latex_document(source, self.config), encoding="utf-8")

            # 1) latex -> dvi
            code, out, _err = await run_command(
                [self.command, "-interaction=nonstopmode", "-halt-on-error", tex_path.name],
                cwd=workdir,
            )
            if code != 0:
                raise MalformedMarkupError(first_latex_error(out))

            # 2) dvi -> svg
            svg_path = workdir / f"{JOB_NAME}.svg"
            code, _out, err = await run_command(
                [
                    self.converter,
                    "--no-fonts",
                    "--exact-bbox",
                    "-o",
                    svg_path.name,
                    f"{JOB_NAME}.dvi",
                ],
                cwd=workdir,
            )
            if code != 0 or not svg_path.exists():
                raise EngineError(err.strip() or f"{self.converter} produced no output")

            return svg_path.read_text(encoding="utf-8")
