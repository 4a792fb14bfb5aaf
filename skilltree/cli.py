"""
SkillTree CLI - play a learning path from the terminal

Runs curricula offline against the in-memory platform, with in-progress attempts
saved to disk so they can be resumed later.

Usage:
    skilltree path course.json --approved 1,2   # Show the learning path
    skilltree play course.json --unit 3         # Take a unit test
    skilltree play course.json --final          # Take the final test
    skilltree resume course.json a1b2c3d4       # Resume a saved attempt
    skilltree attempts                          # List resumable attempts
    skilltree validate course.json              # Check a curriculum file
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from skilltree.collaborators.memory import InMemoryPlatform
from skilltree.config import get_settings
from skilltree.content import LoadedCurriculum, load_curriculum
from skilltree.errors import SkillTreeError
from skilltree.logging_setup import configure_logging
from skilltree.models import AttemptTarget, Question, QuestionType, UnitState
from skilltree.path import LearningPathView
from skilltree.service import LearningPathService
from skilltree.session import AttemptStore, SessionState, TestSession

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="skilltree",
    help="🌳 SkillTree - learning paths, unit tests and hearts in the terminal",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

OFFLINE_USER = "local"

STATE_STYLE = {
    UnitState.COMPLETED: ("✔", "green"),
    UnitState.AVAILABLE: ("●", "cyan"),
    UnitState.LOCKED: ("🔒", "dim"),
}


def _parse_id(raw: str) -> int | str:
    raw = raw.strip()
    return int(raw) if raw.lstrip("-").isdigit() else raw


def _parse_ids(raw: str | None) -> set[int | str]:
    if not raw:
        return set()
    return {_parse_id(part) for part in raw.split(",") if part.strip()}


def _load(curriculum: Path) -> LoadedCurriculum:
    try:
        return load_curriculum(curriculum)
    except SkillTreeError as e:
        console.print(f"[red]✗ {e}[/]")
        raise typer.Exit(1)


def _offline_service(
    loaded: LoadedCurriculum,
    approved: set[int | str],
    hearts: int | None,
    final_passed: bool = False,
    zaps: int = 0,
) -> LearningPathService:
    settings = get_settings()
    platform = InMemoryPlatform(
        curriculum=loaded.curriculum,
        unit_questions=loaded.unit_questions,
        final_questions=loaded.final_questions,
        hearts=settings.max_hearts if hearts is None else hearts,
        attempt_store=AttemptStore(settings.session_dir, settings.attempt_expiry_hours),
        review_limit=settings.review_question_limit,
        **settings.get_hearts_config(),
    )
    platform.approve(OFFLINE_USER, loaded.curriculum.id, *approved)
    platform.set_zaps(OFFLINE_USER, zaps)
    if final_passed:
        platform.final_passed.add((OFFLINE_USER, loaded.curriculum.id))
    return LearningPathService(
        OFFLINE_USER,
        loaded.curriculum,
        platform,
        platform,
        graph=loaded.graph,
        settings=settings,
    )


# =============================================================================
# Rendering
# =============================================================================


def _render_path(view: LearningPathView, title: str) -> None:
    table = Table(title=f"🌳 {title}", show_header=False, box=None, padding=(0, 2))
    for _ in range(get_settings().grid_columns):
        table.add_column(justify="center")

    for row in view.rows:
        cells = []
        for node in row:
            if node is None:
                cells.append("")
                continue
            symbol, style = STATE_STYLE[node.state]
            label = node.unit.name or str(node.unit.id)
            optional = "" if node.unit.mandatory else " [italic](opt)[/]"
            cells.append(f"[{style}]{symbol} {label}[/]{optional}")
        table.add_row(*cells)
    console.print(table)

    if view.final_test is not None:
        symbol, style = STATE_STYLE[view.final_test.state]
        console.print(f"\n[{style}]{symbol} 🏆 {view.final_test.final_test.title}[/]")

    done, total = view.progress
    console.print(f"\n[dim]Progress: {done}/{total} units[/]")
    for problem in view.authoring_errors:
        console.print(f"[yellow]⚠ {problem}[/]")


def _render_question(session: TestSession, question: Question) -> None:
    attempt = session.attempt
    phase = "Review" if session.state is SessionState.REVIEWING else "Question"
    hearts = "∞" if session.ledger.unlimited else "❤ " * session.ledger.balance
    body = f"[bold]{question.title}[/]\n"
    if question.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE):
        for option in question.answers:
            body += f"\n  [cyan]{option.id}[/]) {option.text}"
    elif question.type is QuestionType.ORDER_WORDS:
        words = question.content.get("words") or [o.text for o in question.answers]
        body += f"\n  [cyan]{' / '.join(words)}[/]\n  [dim]Type the words in order[/]"
    console.print(
        Panel(
            body,
            title=f"{phase} {attempt.cursor + 1}/{len(attempt.questions)}",
            subtitle=f"[red]{hearts}[/]",
            border_style="cyan",
        )
    )


def _render_result(session: TestSession) -> None:
    result = session.result
    table = Table(title="Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Score", f"{result.score}% (pass {result.passing_score}%)")
    table.add_row("Correct", f"{result.correct_answers}/{result.total_questions}")
    table.add_row("Experience", f"+{result.experience_gained} XP")
    table.add_row("Outcome", "[green]Passed[/]" if result.passed else "[red]Not passed[/]")
    console.print(table)


# =============================================================================
# Session loop
# =============================================================================


def _announce(session: TestSession) -> None:
    if session.attempt is not None:
        console.print(f"[dim]Attempt {session.attempt.attempt_id} (resume with this id)[/]")


async def _out_of_hearts(session: TestSession, platform: InMemoryPlatform) -> bool:
    """Offer a refill or a zap purchase; False when the learner gives up."""
    console.print("[red]💔 You're out of hearts.[/]")
    if Confirm.ask("Refill hearts?", console=console, default=False):
        await session.refill_hearts(get_settings().max_hearts)
        return True
    if platform.can_purchase(session.user_id) and Confirm.ask(
        f"Buy a heart for {platform.heart_price} zaps?", console=console, default=False
    ):
        await session.refill_hearts(purchase=True)
        return True
    wait = platform.next_heart_in(session.user_id)
    if wait:
        console.print(f"[dim]Next heart in {wait:.1f}h.[/]")
    return False


async def _drive(
    session: TestSession,
    platform: InMemoryPlatform,
    begin: Callable[[], Awaitable[object]] | None = None,
) -> None:
    """
    Run a session to completion, answering from the terminal.

    ``begin`` re-issues the start when the learner had no hearts to start with and
    refilled; without it an idle session just closes.
    """
    while not session.closed:
        state = session.state

        if state in (SessionState.TESTING, SessionState.REVIEWING):
            attempt = session.attempt
            question = attempt.current_question
            if not attempt.current_answered:
                _render_question(session, question)
                answer = Prompt.ask("Answer", console=console)
                record = await session.submit_answer(question.id, answer, slot=attempt.cursor)
                if record.is_correct:
                    console.print("[green]✔ Correct[/]")
                else:
                    console.print("[red]✗ Not quite[/]")
                if session.state is SessionState.NO_HEARTS:
                    continue
            await session.advance()
            if session.streak_overlay:
                console.print(f"[yellow]🔥 {session.streak} in a row![/]")
                session.dismiss_streak()

        elif state is SessionState.NO_HEARTS:
            if not await _out_of_hearts(session, platform):
                session.close()
                break

        elif state is SessionState.IDLE and begin is not None:
            await begin()
            begin = None
            _announce(session)
            if session.state is SessionState.IDLE:
                session.close()

        elif state is SessionState.MISTAKE_REVIEW:
            wrong = len(session.attempt.wrong_question_ids)
            console.print(f"[yellow]📝 {wrong} to review before results.[/]")
            await session.acknowledge_mistakes()

        elif state is SessionState.SUCCESS_CELEBRATION:
            console.print("[bold green]🎉 Perfect![/]")
            await session.dismiss_celebration()

        elif state is SessionState.RESULTS:
            _render_result(session)
            await session.finish()

        elif state is SessionState.AD_INTERSTITIAL:
            console.print("[dim]Thanks for learning with SkillTree.[/]")
            session.close()

        else:
            session.close()


async def _play(service: LearningPathService, unit: int | str | None, final: bool, review: bool) -> None:
    await service.load_path()
    curriculum_id = service.curriculum.id
    if review:
        session = await service.start_review()
        if session is None:
            console.print("[green]No mistakes to review. 🎉[/]")
            return
        begin = partial(session.start_review, curriculum_id)
    elif final:
        session = await service.start_final_test()
        begin = partial(session.start, AttemptTarget.for_final_test(curriculum_id))
    else:
        session = await service.start_unit(unit)
        begin = partial(session.start, AttemptTarget.for_unit(unit, curriculum_id))

    _announce(session)
    await _drive(session, service.progress_store, begin)
    _render_path(await service.refresh_after(session), service.curriculum.title)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def path(
    curriculum: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Curriculum JSON file")],
    approved: Annotated[
        str | None, typer.Option("--approved", "-a", help="Comma-separated approved unit ids")
    ] = None,
    final_passed: Annotated[
        bool, typer.Option("--final-passed", help="Treat the final test as passed")
    ] = False,
) -> None:
    """Show the learning path with each unit's state."""
    loaded = _load(curriculum)
    service = _offline_service(loaded, _parse_ids(approved), hearts=None, final_passed=final_passed)
    view = asyncio.run(service.load_path())
    _render_path(view, loaded.curriculum.title)


@app.command()
def play(
    curriculum: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Curriculum JSON file")],
    unit: Annotated[str | None, typer.Option("--unit", "-u", help="Unit id to test")] = None,
    final: Annotated[bool, typer.Option("--final", help="Take the final test")] = False,
    review: Annotated[bool, typer.Option("--review", help="Review previous mistakes")] = False,
    approved: Annotated[
        str | None, typer.Option("--approved", "-a", help="Comma-separated approved unit ids")
    ] = None,
    hearts: Annotated[int | None, typer.Option("--hearts", help="Starting hearts")] = None,
    zaps: Annotated[int, typer.Option("--zaps", help="Zaps available to buy hearts")] = 0,
) -> None:
    """
    Take a unit test or the final test.

    Examples:
        skilltree play course.json --unit 1
        skilltree play course.json --final --approved 1,2,3
        skilltree play course.json --unit 1 --hearts 0 --zaps 10
    """
    if not (unit or final or review):
        console.print("[yellow]Pick --unit ID, --final or --review[/]")
        raise typer.Exit(2)

    loaded = _load(curriculum)
    service = _offline_service(loaded, _parse_ids(approved), hearts, zaps=zaps)
    try:
        asyncio.run(_play(service, _parse_id(unit) if unit else None, final, review))
    except SkillTreeError as e:
        console.print(f"[red]✗ {e}[/]")
        raise typer.Exit(1)


@app.command()
def resume(
    curriculum: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Curriculum JSON file")],
    attempt_id: Annotated[str, typer.Argument(help="Attempt id to resume")],
    approved: Annotated[
        str | None, typer.Option("--approved", "-a", help="Comma-separated approved unit ids")
    ] = None,
) -> None:
    """Resume a saved attempt at its first unanswered question."""
    loaded = _load(curriculum)
    service = _offline_service(loaded, _parse_ids(approved), hearts=None)

    async def _run() -> bool:
        session = await service.resume(attempt_id)
        if session is None:
            return False
        await _drive(session, service.progress_store)
        _render_path(await service.refresh_after(session), loaded.curriculum.title)
        return True

    try:
        resumed = asyncio.run(_run())
    except SkillTreeError as e:
        console.print(f"[red]✗ {e}[/]")
        raise typer.Exit(1)
    if not resumed:
        console.print(f"[yellow]Attempt {attempt_id} can't be resumed; start a new one.[/]")


@app.command()
def attempts() -> None:
    """List resumable attempts."""
    settings = get_settings()
    store = AttemptStore(settings.session_dir, settings.attempt_expiry_hours)
    snapshots = store.list_attempts()
    if not snapshots:
        console.print("[dim]No attempts in progress.[/]")
        return

    table = Table(title="Attempts in progress")
    table.add_column("Attempt", style="cyan")
    table.add_column("Curriculum")
    table.add_column("Unit")
    table.add_column("Answered", justify="right")
    table.add_column("Last saved", style="dim")
    for snapshot in snapshots:
        table.add_row(
            snapshot.attempt_id,
            str(snapshot.curriculum_id),
            str(snapshot.unit_id) if snapshot.unit_id is not None else snapshot.kind,
            f"{len(snapshot.answers)}/{len(snapshot.question_ids)}",
            snapshot.last_saved_at[:16].replace("T", " "),
        )
    console.print(table)


@app.command()
def validate(
    curriculum: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Curriculum JSON file")],
    strict: Annotated[bool, typer.Option("--strict", help="Fail on any authoring problem")] = False,
) -> None:
    """Check a curriculum file for authoring errors."""
    try:
        loaded = load_curriculum(curriculum, strict=strict)
    except SkillTreeError as e:
        console.print(f"[red]✗ {e}[/]")
        raise typer.Exit(1)

    if loaded.authoring_errors:
        for problem in loaded.authoring_errors:
            console.print(f"[yellow]⚠ {problem}[/]")
    else:
        console.print(f"[green]✓ {loaded.curriculum.title}: {len(loaded.curriculum.units)} units, no problems[/]")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
) -> None:
    """
    🌳 SkillTree - learning paths in the terminal

    \b
    Quick Start:
      skilltree path course.json       # Show the path
      skilltree play course.json -u 1  # Take the first unit
    """
    configure_logging(level="DEBUG" if verbose else None)
    logger.debug("SkillTree CLI starting")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
