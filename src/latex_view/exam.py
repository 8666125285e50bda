"""Exam document loading.

Only ``question_latex`` is interpreted by the renderer; every other field is
carried along for display.  Unknown keys are kept in ``extra`` so a document
can be written back out unchanged.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional


@dataclass
class Question:
    question_id: str
    question_latex: str
    marks: float
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        known = {"question_id", "question_latex", "marks"}
        return cls(
            question_id=str(data["question_id"]),
            question_latex=data["question_latex"],
            marks=data["marks"],
            extra={k: v for k, v in data.items() if k not in known},
        )

    @property
    def marks_label(self) -> str:
        return f"{self.marks:g} {'mark' if self.marks == 1 else 'marks'}"


@dataclass
class Section:
    section_name: str
    questions: list[Question]
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Section":
        return cls(
            section_name=data["section_name"],
            questions=[Question.from_dict(q) for q in data["questions"]],
            description=data.get("description"),
        )

    @property
    def title(self) -> str:
        return f"{self.section_name.replace('_', ' ').title()} Section"

    @property
    def total_marks(self) -> float:
        return sum(q.marks for q in self.questions)


@dataclass
class ExamDocument:
    name: str
    course: str
    start_date: str
    end_date: str
    total_time: str
    total_marks: float
    lessons: list[str]
    sections: list[Section]
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExamDocument":
        known = {
            "name", "course", "start_date", "end_date",
            "total_time", "total_marks", "lessons", "questions",
        }
        return cls(
            name=data["name"],
            course=data["course"],
            start_date=data["start_date"],
            end_date=data["end_date"],
            total_time=str(data["total_time"]),
            total_marks=data["total_marks"],
            lessons=list(data["lessons"]),
            sections=[Section.from_dict(s) for s in data["questions"]],
            extra={k: v for k, v in data.items() if k not in known},
        )

    def iter_questions(self) -> Iterator[tuple[Section, Question]]:
        for section in self.sections:
            for question in section.questions:
                yield section, question


def load_exam(path: Path) -> ExamDocument:
    """Read an exam JSON document.

    Raises ``json.JSONDecodeError`` for invalid JSON and ``KeyError`` /
    ``TypeError`` when the document does not have the expected shape.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    return ExamDocument.from_dict(data)
