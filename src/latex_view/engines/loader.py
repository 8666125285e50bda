"""Lazy, shared access to a typesetting engine.

One ``EngineLoader`` is created by the caller and handed to every
``RenderController``.  It loads the engine at most once, exposes readiness
both as a callback and as an awaitable, and turns every engine call into an
``Outcome`` that carries the submission token it was made for.

A load failure is logged and leaves the loader permanently not-ready.  Nothing
is raised: from a controller's point of view the engine simply never arrives,
and callers that need a bound wrap their waits in their own timeout.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from latex_view.engines.base import BaseEngine, EngineError


@dataclass(frozen=True)
class Outcome:
    token: int
    ok: bool
    output: str = ""
    error: Optional[BaseException] = None


class EngineLoader:
    def __init__(self, engine: BaseEngine, logger: Optional[logging.Logger] = None) -> None:
        self.engine = engine
        self._logger = logger or logging.getLogger(__name__)
        self._ready: Optional[asyncio.Future] = None
        self._load_task: Optional[asyncio.Task] = None
        self.load_error: Optional[BaseException] = None
        self.submissions = 0
        self.failures = 0

    @property
    def ready(self) -> bool:
        return self._ready is not None and self._ready.done()

    def _ready_future(self) -> asyncio.Future:
        if self._ready is None:
            self._ready = asyncio.get_running_loop().create_future()
        return self._ready

    def ensure_loaded(self) -> None:
        """Start loading the engine unless that already happened."""
        if self._load_task is not None:
            return
        self._ready_future()
        self._load_task = asyncio.get_running_loop().create_task(self._load())

    async def _load(self) -> None:
        try:
            await self.engine.load()
        except (EngineError, OSError) as exc:
            self.load_error = exc
            self._logger.error("Typesetting engine %s unavailable: %s", self.engine.name, exc)
            return
        self._logger.debug("Typesetting engine %s ready", self.engine.name)
        self._ready_future().set_result(None)

    def on_ready(self, callback: Callable[[], None]) -> None:
        """Call *callback* once the engine is ready (immediately if it already is)."""
        future = self._ready_future()
        if future.done():
            callback()
            return
        future.add_done_callback(lambda _future: callback())

    async def wait_ready(self) -> None:
        # shield: one waiter being cancelled must not cancel readiness for all.
        await asyncio.shield(self._ready_future())

    async def wait_load_attempt(self) -> bool:
        """Wait for the load attempt to finish; True if the engine is now ready."""
        self.ensure_loaded()
        await asyncio.shield(self._load_task)
        return self.ready

    async def typeset(self, source: str, token: int) -> Outcome:
        """Typeset *source* for submission *token*; engine failures become ``ok=False``."""
        self.submissions += 1
        try:
            output = await self.engine.typeset(source)
        except (EngineError, OSError) as exc:
            self.failures += 1
            return Outcome(token=token, ok=False, error=exc)
        return Outcome(token=token, ok=True, output=output)
