"""Render lifecycle for a single output target.

States
------
``IDLE``             nothing submitted yet
``AWAITING_ENGINE``  text preprocessed, engine still loading
``SUBMITTING``       engine call in flight
``RENDERED``         engine output written to the target
``FALLBACK``         engine failed; plain-text degradation written instead

Every ``render`` call mints a new submission token.  Engine outcomes carry
the token they were made for, and only an outcome whose token is still the
latest one may touch the target, so the target always shows the newest
call that completed, whatever order the engine answers in.  Superseded calls
are not cancelled; their results are dropped when they arrive.

``render`` is synchronous but schedules work on the running event loop, so it
must be called from inside one.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from latex_view.engines.loader import EngineLoader, Outcome
from latex_view.wrapping import AUTO, RequestedMode, fallback_text, preprocess


class RenderState(str, Enum):
    IDLE = "idle"
    AWAITING_ENGINE = "awaiting-engine"
    SUBMITTING = "submitting"
    RENDERED = "rendered"
    FALLBACK = "fallback"


class RenderTarget(ABC):
    """Caller-owned sink for rendered content."""

    @abstractmethod
    def write(self, content: str) -> None:
        ...


class BufferTarget(RenderTarget):
    def __init__(self) -> None:
        self.content = ""
        self.writes = 0

    def write(self, content: str) -> None:
        self.content = content
        self.writes += 1


class RenderController:
    def __init__(
        self,
        loader: EngineLoader,
        target: RenderTarget,
        *,
        advanced: bool = True,
        on_failure: Optional[Callable[[Outcome], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.loader = loader
        self.target = target
        self.advanced = advanced
        self.on_failure = on_failure
        self._logger = logger or logging.getLogger(__name__)

        self.state = RenderState.IDLE
        self.token = 0
        self.wrapped = ""
        self.rendered_token = 0
        self.failures = 0
        self._submitted_token = 0

        self._closed = False
        self._waiter: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._settled = asyncio.Event()

    # ── Public API ─────────────────────────────────────────────────────────────

    def render(self, raw_text: str, mode: RequestedMode = AUTO) -> int:
        """Preprocess *raw_text* and submit it; returns the new submission token."""
        self.token += 1
        self.wrapped = preprocess(raw_text, mode, advanced=self.advanced)
        self._settled.clear()

        if self.loader.ready:
            self._submit(self.token, self.wrapped)
        else:
            self.state = RenderState.AWAITING_ENGINE
            self.loader.ensure_loaded()
            if self._waiter is None:
                self._waiter = asyncio.get_running_loop().create_task(self._await_engine())
        return self.token

    async def settled(self) -> RenderState:
        """Wait until the latest submission has been rendered or has fallen back."""
        await self._settled.wait()
        return self.state

    def fallback(self) -> None:
        """Degrade the latest submission to plain text right away.

        Meant for callers that impose their own deadline on the engine.
        """
        self._apply_fallback(self.token, error=None)

    def close(self) -> None:
        """Stop listening for readiness and ignore any outcome still in flight."""
        self._closed = True
        if self._waiter is not None:
            self._waiter.cancel()
            self._waiter = None

    # ── Internals ──────────────────────────────────────────────────────────────

    async def _await_engine(self) -> None:
        await self.loader.wait_ready()
        self._waiter = None
        # Only the newest text is submitted, and only if render() has not
        # already sent it straight to the engine.
        if not self._closed and self._submitted_token != self.token:
            self._submit(self.token, self.wrapped)

    def _submit(self, token: int, wrapped: str) -> None:
        self._submitted_token = token
        self.state = RenderState.SUBMITTING
        task = asyncio.get_running_loop().create_task(self._typeset(token, wrapped))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _typeset(self, token: int, wrapped: str) -> None:
        outcome = await self.loader.typeset(wrapped, token)
        if self._closed or outcome.token != self.token:
            self._logger.debug("Discarding stale submission %d", outcome.token)
            return
        if outcome.ok:
            self.target.write(outcome.output)
            self.rendered_token = token
            self.state = RenderState.RENDERED
            self._settled.set()
        else:
            self._apply_fallback(token, outcome.error)
            if self.on_failure is not None:
                self.on_failure(outcome)

    def _apply_fallback(self, token: int, error: Optional[BaseException]) -> None:
        if error is not None:
            self.failures += 1
            self._logger.warning(
                "Typesetting with %s failed, showing plain text: %s",
                self.loader.engine.name,
                error,
            )
        self.target.write(fallback_text(self.wrapped))
        self.rendered_token = token
        self.state = RenderState.FALLBACK
        self._settled.set()
