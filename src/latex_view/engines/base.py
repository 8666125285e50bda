"""Abstract base for typesetting engines."""

import asyncio
import contextlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence


class EngineError(Exception):
    """Base class for everything an engine can fail with."""


class EngineUnavailableError(EngineError):
    """The engine could not be acquired (missing binary, broken install)."""


class MalformedMarkupError(EngineError):
    """The engine rejected the markup it was asked to typeset."""


class BaseEngine(ABC):
    name: str = "engine"

    @abstractmethod
    async def load(self) -> None:
        """Acquire the engine. Raise ``EngineUnavailableError`` if that is impossible."""
        ...

    @abstractmethod
    async def typeset(self, source: str) -> str:
        """Typeset delimited markup and return the rendered output."""
        ...


async def run_command(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    stdin: Optional[str] = None,
) -> tuple[int, str, str]:
    """Run *args* without blocking the event loop.

    Returns ``(returncode, stdout, stderr)`` with both streams decoded as UTF-8.
    If the calling task is cancelled the child is killed and reaped before the
    cancellation propagates.
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd) if cwd is not None else None,
        stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await proc.communicate(stdin.encode("utf-8") if stdin is not None else None)
    except BaseException:
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
        raise
    return (
        proc.returncode,
        out.decode("utf-8", errors="replace"),
        err.decode("utf-8", errors="replace"),
    )
