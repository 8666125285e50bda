"""Shared fixtures for the test suite.

The typesetting engine is replaced by ``FakeEngine`` so no LaTeX or MathJax
install is needed.  Exam documents are real JSON files on disk so the loader
and the CLI exercise their actual code paths.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import pytest
from click.testing import CliRunner

from latex_view.engines.base import BaseEngine, MalformedMarkupError


class FakeEngine(BaseEngine):
    """In-memory engine whose loading and typesetting can be held open.

    ``gate(source)`` returns an event that must be set before a typeset call
    for *source* completes; ``hold_load()`` does the same for ``load``.
    """

    name = "fake"

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.loads = 0
        self.fail_on: set[str] = set()
        self.load_error: Optional[Exception] = None
        self._gates: dict[str, asyncio.Event] = {}
        self._load_gate: Optional[asyncio.Event] = None

    def gate(self, source: str) -> asyncio.Event:
        return self._gates.setdefault(source, asyncio.Event())

    def hold_load(self) -> asyncio.Event:
        self._load_gate = asyncio.Event()
        return self._load_gate

    async def load(self) -> None:
        self.loads += 1
        if self._load_gate is not None:
            await self._load_gate.wait()
        if self.load_error is not None:
            raise self.load_error

    async def typeset(self, source: str) -> str:
        self.calls.append(source)
        gate = self._gates.get(source)
        if gate is not None:
            await gate.wait()
        if source in self.fail_on:
            raise MalformedMarkupError(f"cannot typeset {source}")
        return f"<svg>{source}</svg>"


# ── CLI runner ─────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


# ── Engine fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


# ── Exam fixtures ──────────────────────────────────────────────────────────


SAMPLE_EXAM = {
    "name": "Testing 1010",
    "course": "68139607dffb3e24eac39b3f",
    "start_date": "2025-06-28T04:50:00.000Z",
    "end_date": "2025-06-28T05:10:00.000Z",
    "total_time": "20",
    "total_marks": 6,
    "lessons": ["LESSON1", "LESSON2"],
    "questions": [
        {
            "section_name": "mcq",
            "description": None,
            "questions": [
                {
                    "question_id": "q-frac",
                    "question_latex": (
                        "What is the decimal expansion of $\\frac{1}{3}$?$\\\\$"
                        "Options:$\\newline$ (A) 0.333...$\\newline$ (B) 0.3"
                    ),
                    "marks": 1,
                },
                {
                    "question_id": "q-inline",
                    "question_latex": "x^2 + y_1 = z",
                    "marks": 2,
                },
            ],
        },
        {
            "section_name": "true_false",
            "description": "Answer true or false.",
            "questions": [
                {
                    "question_id": "q-wrapped",
                    "question_latex": "$\\sqrt{2}$",
                    "marks": 3,
                },
            ],
        },
    ],
}


@pytest.fixture
def exam_data() -> dict:
    return json.loads(json.dumps(SAMPLE_EXAM))


@pytest.fixture
def exam_file(tmp_path: Path, exam_data: dict) -> Path:
    """The sample exam written to a temporary JSON file."""
    path = tmp_path / "exam.json"
    path.write_text(json.dumps(exam_data), encoding="utf-8")
    return path
