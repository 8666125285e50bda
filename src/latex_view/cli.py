"""Main CLI entry point."""

import asyncio
import html
import itertools
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Collection, Optional, Sequence

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from latex_view.config import Config, Engine, parse_macro
from latex_view.controller import BufferTarget, RenderController, RenderState
from latex_view.engines.latex import LatexEngine
from latex_view.engines.loader import EngineLoader
from latex_view.engines.mathjax import MathJaxEngine
from latex_view.exam import ExamDocument, load_exam

console = Console(stderr=True)
load_dotenv()

logger = logging.getLogger(__name__)

MODES = ["auto", "inline", "display"]


def _parse_macros(ctx, param, values) -> dict[str, str]:
    macros = {}
    for value in values:
        try:
            name, body = parse_macro(value)
        except ValueError as e:
            raise click.BadParameter(str(e)) from None
        macros[name] = body
    return macros


def _engine_options(func):
    """Options shared by every command that drives the typesetting engine."""
    options = [
        click.option(
            "--engine", "-e",
            type=click.Choice([e.value for e in Engine], case_sensitive=False),
            default=Engine.LATEX.value,
            show_default=True,
            help="Typesetting engine to drive.",
        ),
        click.option(
            "--command",
            default=None,
            help="Engine executable (defaults to latex / tex2svg, or the LATEX_VIEW_* variables).",
        ),
        click.option(
            "--macro", "macros",
            multiple=True,
            metavar="NAME=BODY",
            callback=_parse_macros,
            help="Macro passed to the engine, e.g. --macro 'RR=\\mathbb{R}'. Repeatable.",
        ),
        click.option(
            "--package", "packages",
            multiple=True,
            help="LaTeX package to load (replaces the amsmath/amssymb default). Repeatable.",
        ),
        click.option(
            "--timeout",
            type=float,
            default=None,
            help="Seconds to wait for the engine before showing plain text. 0 waits forever.",
        ),
        click.option(
            "--advanced/--no-advanced",
            default=True,
            show_default=True,
            help="Normalise the markup and auto-detect display math before wrapping.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.version_option()
def main(verbose):
    """Typeset loosely formatted LaTeX question text."""
    _configure_logging(verbose)


@main.command()
@click.argument("text")
@click.option(
    "--mode", "-m",
    type=click.Choice(MODES, case_sensitive=False),
    default="auto",
    show_default=True,
    help="Math mode; auto picks display for environments and big operators.",
)
@click.option(
    "--output", "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file path. Defaults to stdout.",
)
@_engine_options
def render(text, mode, output, engine, command, macros, packages, timeout, advanced):
    """Typeset TEXT and print the engine output.

    Pass - as TEXT to read the markup from stdin.  When the engine is missing
    or rejects the markup a plain-text rendering is printed instead.
    """
    config = _load_config(engine, command, macros, packages, timeout, advanced)
    if text == "-":
        text = click.get_text_stream("stdin").read()

    [controller] = asyncio.run(render_all(config, [(text, mode)]))

    if controller.state is RenderState.FALLBACK:
        console.print("[yellow]Typesetting failed; showing plain-text fallback.[/yellow]")
    _emit(controller.target.content, output)


@main.command()
@click.argument("exam_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--mode", "-m",
    type=click.Choice(MODES, case_sensitive=False),
    default="auto",
    show_default=True,
    help="Math mode applied to every question.",
)
@click.option(
    "--output", "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Write an HTML page instead of printing to the terminal.",
)
@_engine_options
def exam(exam_path, mode, output, engine, command, macros, packages, timeout, advanced):
    """Typeset every question of the exam JSON document at EXAM_PATH."""
    config = _load_config(engine, command, macros, packages, timeout, advanced)

    try:
        document = load_exam(exam_path)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        console.print(
            f"[red]Error loading exam:[/red] {e}. Please check that the JSON format is correct."
        )
        sys.exit(1)

    pairs = list(document.iter_questions())
    with console.status(f"[cyan]Typesetting {len(pairs)} question(s) via {config.engine.value}..."):
        controllers = asyncio.run(
            render_all(config, [(question.question_latex, mode) for _, question in pairs])
        )

    fallbacks = sum(c.state is RenderState.FALLBACK for c in controllers)
    if fallbacks:
        console.print(f"[yellow]{fallbacks} question(s) shown as plain text.[/yellow]")

    # Positional, in iter_questions() order: question ids are not guaranteed unique.
    results = [controller.target.content for controller in controllers]
    plain = {
        index
        for index, controller in enumerate(controllers)
        if controller.state is RenderState.FALLBACK
    }
    if output:
        output.write_text(exam_html(document, results, plain), encoding="utf-8")
        console.print(f"[green]Written to {output}[/green]")
    else:
        _print_exam(document, results)


# ── Rendering ──────────────────────────────────────────────────────────────


async def render_all(config: Config, items: list[tuple[str, str]]) -> list[RenderController]:
    """Render every ``(text, mode)`` pair concurrently through one shared engine."""
    loader = EngineLoader(_build_engine(config))
    controllers = []
    for text, mode in items:
        controller = RenderController(loader, BufferTarget(), advanced=config.advanced)
        controller.render(text, mode)
        controllers.append(controller)
    await asyncio.gather(*(_settle(c, config.timeout) for c in controllers))
    return controllers


async def _settle(controller: RenderController, timeout: Optional[float]) -> None:
    try:
        await asyncio.wait_for(_settled_or_unavailable(controller), timeout)
    except asyncio.TimeoutError:
        logger.warning("Engine did not answer within %gs; showing plain text.", timeout)
        controller.fallback()


async def _settled_or_unavailable(controller: RenderController) -> None:
    if not await controller.loader.wait_load_attempt():
        controller.fallback()
        return
    await controller.settled()


def _build_engine(config: Config):
    if config.engine == Engine.LATEX:
        return LatexEngine(command=config.command, config=config.engine_config)
    elif config.engine == Engine.MATHJAX:
        return MathJaxEngine(command=config.command, config=config.engine_config)
    else:
        raise ValueError(f"Unknown engine: {config.engine}")


# ── Helpers ────────────────────────────────────────────────────────────────


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("latex_view")
    package_logger.handlers[:] = [RichHandler(console=console, show_path=False)]
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load_config(engine, command, macros, packages, timeout, advanced) -> Config:
    try:
        return Config.from_env(
            engine=Engine(engine.lower()),
            command_override=command,
            timeout_override=timeout,
            macros=macros,
            packages=packages,
            advanced=advanced,
        )
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _emit(content: str, output: Optional[Path]) -> None:
    if output:
        output.write_text(content, encoding="utf-8")
        console.print(f"[green]Written to {output}[/green]")
    else:
        click.echo(content)


def _format_date(value: str) -> str:
    try:
        return datetime.fromisoformat(value).strftime("%B %d, %Y %H:%M")
    except ValueError:
        return value


def _print_exam(document: ExamDocument, results: Sequence[str]) -> None:
    outputs = iter(results)
    console.print(f"[bold]{document.name}[/bold]")
    console.print(
        f"[dim]{_format_date(document.start_date)} · {document.total_time} minutes · "
        f"Total Marks: {document.total_marks}[/dim]"
    )
    if document.lessons:
        console.print(f"[dim]Lessons covered: {', '.join(document.lessons)}[/dim]")

    for section in document.sections:
        console.print(
            f"\n[bold cyan]{section.title}[/bold cyan] "
            f"[dim]({len(section.questions)} questions, {section.total_marks:g} marks)[/dim]"
        )
        if section.description:
            console.print(f"[dim]{section.description}[/dim]")
        for number, question in enumerate(section.questions, start=1):
            console.print(f"[bold]Question {number}[/bold] [dim]{question.marks_label}[/dim]")
            click.echo(next(outputs))


def exam_html(
    document: ExamDocument,
    results: Sequence[str],
    plain: Collection[int] = (),
) -> str:
    """Assemble the rendered questions into a standalone HTML page.

    *results* holds one entry per question in ``iter_questions()`` order.
    Positions listed in *plain* hold fallback text rather than engine markup
    and are escaped and kept in a <pre> block.
    """
    esc = html.escape
    positions = itertools.count()
    parts = [
        "<!doctype html>",
        '<html lang="en">',
        f"<head><meta charset=\"utf-8\" /><title>{esc(document.name)}</title></head>",
        "<body>",
        f"<h1>{esc(document.name)}</h1>",
        f"<p>{esc(_format_date(document.start_date))} &middot; "
        f"{esc(document.total_time)} minutes &middot; Total Marks: {document.total_marks}</p>",
    ]
    for section in document.sections:
        parts.append(f'<section><h2>{esc(section.title)}</h2>')
        if section.description:
            parts.append(f"<p>{esc(section.description)}</p>")
        for number, question in enumerate(section.questions, start=1):
            index = next(positions)
            body = results[index]
            if index in plain:
                body = f"<pre>{esc(body)}</pre>"
            parts.append(
                f'<article id="{esc(question.question_id)}">'
                f"<h3>Question {number} <small>{esc(question.marks_label)}</small></h3>"
                f'<div class="math">{body}</div>'
                "</article>"
            )
        parts.append("</section>")
    parts.extend(["</body>", "</html>"])
    return "\n".join(parts)
