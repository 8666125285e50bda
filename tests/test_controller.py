"""Tests for latex_view.controller — the render lifecycle state machine.

Every test drives a ``FakeEngine`` (see conftest) whose load and typeset calls
can be held open, so completion order is fully controlled.
"""

import asyncio

import pytest

from latex_view.controller import BufferTarget, RenderController, RenderState
from latex_view.engines.base import EngineUnavailableError
from latex_view.engines.loader import EngineLoader


async def _drain(turns: int = 10) -> None:
    for _ in range(turns):
        await asyncio.sleep(0)


async def _ready_loader(engine) -> EngineLoader:
    loader = EngineLoader(engine)
    loader.ensure_loaded()
    await asyncio.wait_for(loader.wait_ready(), 1)
    return loader


async def _settle(controller: RenderController) -> RenderState:
    return await asyncio.wait_for(controller.settled(), 1)


# ── Basic transitions ──────────────────────────────────────────────────────


class TestRender:
    @pytest.mark.asyncio
    async def test_starts_idle(self, fake_engine):
        controller = RenderController(EngineLoader(fake_engine), BufferTarget())
        assert controller.state is RenderState.IDLE
        assert controller.token == 0

    @pytest.mark.asyncio
    async def test_fraction_is_typeset_as_display_math(self, fake_engine):
        target = BufferTarget()
        controller = RenderController(EngineLoader(fake_engine), target)
        controller.render(r"\frac{a}{b}", "auto")
        assert await _settle(controller) is RenderState.RENDERED
        assert fake_engine.calls == [r"$$\frac{a}{b}$$"]
        assert target.content == r"<svg>$$\frac{a}{b}$$</svg>"

    @pytest.mark.asyncio
    async def test_simple_expression_is_typeset_inline(self, fake_engine):
        controller = RenderController(EngineLoader(fake_engine), BufferTarget())
        controller.render("x^2 + y_1 = z", "auto")
        await _settle(controller)
        assert fake_engine.calls == ["$x^2 + y_1 = z$"]

    @pytest.mark.asyncio
    async def test_pre_wrapped_text_is_not_wrapped_again(self, fake_engine):
        controller = RenderController(EngineLoader(fake_engine), BufferTarget())
        controller.render(r"$\sqrt{2}$", "auto")
        await _settle(controller)
        assert fake_engine.calls == [r"$\sqrt{2}$"]

    @pytest.mark.asyncio
    async def test_tokens_increase_per_call(self, fake_engine):
        controller = RenderController(EngineLoader(fake_engine), BufferTarget())
        assert controller.render("a") == 1
        assert controller.render("b") == 2

    @pytest.mark.asyncio
    async def test_waits_for_engine_before_submitting(self, fake_engine):
        gate = fake_engine.hold_load()
        controller = RenderController(EngineLoader(fake_engine), BufferTarget())
        controller.render("x")
        await _drain()
        assert controller.state is RenderState.AWAITING_ENGINE
        assert fake_engine.calls == []

        gate.set()
        assert await _settle(controller) is RenderState.RENDERED
        assert fake_engine.calls == ["$x$"]

    @pytest.mark.asyncio
    async def test_ready_engine_goes_straight_to_submitting(self, fake_engine):
        loader = await _ready_loader(fake_engine)
        fake_engine.gate("$x$")
        controller = RenderController(loader, BufferTarget())
        controller.render("x")
        assert controller.state is RenderState.SUBMITTING

    @pytest.mark.asyncio
    async def test_render_again_after_rendered_reuses_target(self, fake_engine):
        loader = await _ready_loader(fake_engine)
        target = BufferTarget()
        controller = RenderController(loader, target)
        controller.render("a")
        await _settle(controller)
        controller.render("b")
        assert await _settle(controller) is RenderState.RENDERED
        assert target.content == "<svg>$b$</svg>"
        assert controller.rendered_token == 2

    @pytest.mark.asyncio
    async def test_basic_processing_only_adds_delimiters(self, fake_engine):
        controller = RenderController(EngineLoader(fake_engine), BufferTarget(), advanced=False)
        controller.render(r"\frac{a}{b}", "auto")
        await _settle(controller)
        assert fake_engine.calls == [r"$\frac{a}{b}$"]


# ── Ordering ───────────────────────────────────────────────────────────────


class TestLastWriteWins:
    @pytest.mark.asyncio
    async def test_older_result_arriving_late_is_discarded(self, fake_engine):
        loader = await _ready_loader(fake_engine)
        first = fake_engine.gate("$first$")
        target = BufferTarget()
        controller = RenderController(loader, target)

        controller.render("first")
        controller.render("second")
        await _settle(controller)
        assert target.content == "<svg>$second$</svg>"

        first.set()
        await _drain()
        assert target.content == "<svg>$second$</svg>"
        assert controller.state is RenderState.RENDERED
        assert controller.rendered_token == 2
        assert fake_engine.calls == ["$first$", "$second$"]

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_trigger_fallback(self, fake_engine, caplog):
        loader = await _ready_loader(fake_engine)
        first = fake_engine.gate("$first$")
        fake_engine.fail_on.add("$first$")
        target = BufferTarget()
        controller = RenderController(loader, target)

        controller.render("first")
        controller.render("second")
        await _settle(controller)
        first.set()
        await _drain()

        assert controller.state is RenderState.RENDERED
        assert controller.failures == 0
        assert target.content == "<svg>$second$</svg>"
        assert "failed" not in caplog.text

    @pytest.mark.asyncio
    async def test_newer_call_still_in_flight_keeps_submitting(self, fake_engine):
        loader = await _ready_loader(fake_engine)
        second = fake_engine.gate("$second$")
        target = BufferTarget()
        controller = RenderController(loader, target)

        controller.render("first")
        controller.render("second")
        await _drain()
        assert controller.state is RenderState.SUBMITTING
        assert target.writes == 0

        second.set()
        await _settle(controller)
        assert target.content == "<svg>$second$</svg>"

    @pytest.mark.asyncio
    async def test_only_latest_text_submitted_after_waiting(self, fake_engine):
        gate = fake_engine.hold_load()
        controller = RenderController(EngineLoader(fake_engine), BufferTarget())
        controller.render("first")
        controller.render("second")
        controller.render("third")
        gate.set()
        await _settle(controller)
        assert fake_engine.calls == ["$third$"]

    @pytest.mark.asyncio
    async def test_render_as_engine_arrives_is_submitted_once(self, fake_engine):
        gate = fake_engine.hold_load()
        loader = EngineLoader(fake_engine)
        target = BufferTarget()
        controller = RenderController(loader, target)
        controller.render("first")

        gate.set()
        while not loader.ready:
            await asyncio.sleep(0)
        controller.render("second")
        await _settle(controller)
        await _drain()

        assert fake_engine.calls.count("$second$") == 1
        assert target.writes == 1
        assert target.content == "<svg>$second$</svg>"

    @pytest.mark.asyncio
    async def test_targets_are_independent(self, fake_engine):
        loader = await _ready_loader(fake_engine)
        slow = fake_engine.gate("$slow$")
        a, b = BufferTarget(), BufferTarget()
        first = RenderController(loader, a)
        second = RenderController(loader, b)

        first.render("slow")
        second.render("fast")
        await _settle(second)
        assert b.content == "<svg>$fast$</svg>"
        assert first.state is RenderState.SUBMITTING

        slow.set()
        await _settle(first)
        assert a.content == "<svg>$slow$</svg>"


# ── Fallback ───────────────────────────────────────────────────────────────


class TestFallback:
    @pytest.mark.asyncio
    async def test_engine_failure_shows_plain_text(self, fake_engine):
        fake_engine.fail_on.add("$$bad$$")
        target = BufferTarget()
        controller = RenderController(EngineLoader(fake_engine), target)
        controller.render("$$bad$$", "auto")
        assert await _settle(controller) is RenderState.FALLBACK
        assert target.content == "bad"

    @pytest.mark.asyncio
    async def test_fallback_converts_line_breaks(self, fake_engine):
        fake_engine.fail_on.add(r"$a\\b$")
        target = BufferTarget()
        controller = RenderController(EngineLoader(fake_engine), target)
        controller.render(r"a$\newline$b", "inline")
        await _settle(controller)
        assert target.content == "a\nb"
        assert "$" not in target.content

    @pytest.mark.asyncio
    async def test_failure_is_logged_counted_and_reported(self, fake_engine, caplog):
        fake_engine.fail_on.add("$$bad$$")
        seen = []
        controller = RenderController(
            EngineLoader(fake_engine), BufferTarget(), on_failure=seen.append
        )
        controller.render("$$bad$$")
        await _settle(controller)
        assert controller.failures == 1
        assert len(seen) == 1
        assert seen[0].token == 1
        assert "cannot typeset" in caplog.text

    @pytest.mark.asyncio
    async def test_later_success_leaves_fallback(self, fake_engine):
        fake_engine.fail_on.add("$$bad$$")
        target = BufferTarget()
        controller = RenderController(EngineLoader(fake_engine), target)
        controller.render("$$bad$$")
        await _settle(controller)
        controller.render("good")
        assert await _settle(controller) is RenderState.RENDERED
        assert target.content == "<svg>$good$</svg>"

    @pytest.mark.asyncio
    async def test_manual_fallback_while_waiting_for_engine(self, fake_engine):
        fake_engine.hold_load()
        target = BufferTarget()
        controller = RenderController(EngineLoader(fake_engine), target)
        controller.render(r"x \\ y", "display")
        controller.fallback()
        assert controller.state is RenderState.FALLBACK
        assert target.content == "x\ny"
        assert controller.failures == 0


# ── Engine absence and shutdown ────────────────────────────────────────────


class TestUnavailableEngine:
    @pytest.mark.asyncio
    async def test_stays_awaiting_engine(self, fake_engine):
        fake_engine.load_error = EngineUnavailableError("latex not found on PATH")
        loader = EngineLoader(fake_engine)
        controller = RenderController(loader, BufferTarget())
        controller.render("x")
        await loader.wait_load_attempt()
        await _drain()
        assert controller.state is RenderState.AWAITING_ENGINE
        assert fake_engine.calls == []

    @pytest.mark.asyncio
    async def test_engine_loaded_once_for_many_controllers(self, fake_engine):
        loader = EngineLoader(fake_engine)
        controllers = [RenderController(loader, BufferTarget()) for _ in range(3)]
        for i, controller in enumerate(controllers):
            controller.render(f"x_{i}")
        await asyncio.gather(*(_settle(c) for c in controllers))
        assert fake_engine.loads == 1


class TestClose:
    @pytest.mark.asyncio
    async def test_outcome_after_close_is_ignored(self, fake_engine):
        loader = await _ready_loader(fake_engine)
        gate = fake_engine.gate("$x$")
        target = BufferTarget()
        controller = RenderController(loader, target)
        controller.render("x")
        controller.close()
        gate.set()
        await _drain()
        assert target.writes == 0

    @pytest.mark.asyncio
    async def test_close_stops_waiting_for_engine(self, fake_engine):
        gate = fake_engine.hold_load()
        controller = RenderController(EngineLoader(fake_engine), BufferTarget())
        controller.render("x")
        controller.close()
        gate.set()
        await _drain()
        assert fake_engine.calls == []
