"""
ReQuizle CLI - study quizzes from the terminal.

Usage:
    requizle validate quiz.json         # Check a quiz file without importing
    requizle import quiz.json           # Merge subjects into the active profile
    requizle subjects                   # List subjects with mastery
    requizle study feature-showcase     # Study a subject
    requizle profiles                   # List profiles
"""

from __future__ import annotations

import asyncio
import inspect
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from src.requizle.errors import ImportValidationError, MigrationError
from src.requizle.importer import (
    extract_media_references,
    get_local_media_refs,
    resolve_local_media,
    validate_subjects,
)
from src.requizle.media import MediaLoader, SQLiteMediaStore
from src.requizle.models import Question, StudyMode
from src.requizle.profile_store import ProfileStore
from src.requizle.questions import get_handler
from src.requizle.quiz_logic import (
    calculate_subject_mastery,
    calculate_topic_mastery,
    get_active_questions,
)
from src.requizle.session import QuizSession
from src.requizle.storage import create_persistence

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="requizle",
    help="ReQuizle - quiz yourself until it sticks",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _with_store(action: Callable[[ProfileStore], Any]) -> Any:
    """Load the store, run ``action`` against it, then flush to disk."""

    async def _inner() -> Any:
        manager = create_persistence()
        await manager.migrate_from_secondary()
        try:
            store = await manager.load()
        except MigrationError as e:
            console.print(f"[red]Cannot load saved data:[/] {e}")
            raise typer.Exit(1)

        try:
            result = action(store)
            if inspect.isawaitable(result):
                result = await result
        finally:
            await manager.flush(store)
        return result

    return asyncio.run(_inner())


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        console.print(f"[red]Cannot read {path}:[/] {e}")
        raise typer.Exit(1)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}:[/] {e.msg} (line {e.lineno})")
        raise typer.Exit(1)


def _mastery_style(pct: int) -> str:
    if pct >= 80:
        return "green"
    if pct >= 40:
        return "yellow"
    return "red"


# =============================================================================
# Library Commands
# =============================================================================


@app.command()
def validate(
    file: Annotated[Path, typer.Argument(help="Quiz JSON file")],
) -> None:
    """Validate a quiz file without importing it."""
    data = _read_json(file)
    try:
        subjects = validate_subjects(data)
    except ImportValidationError as e:
        console.print(f"[red]✗[/] {e}")
        raise typer.Exit(1)

    table = Table(title=f"✓ {file.name} is valid", box=box.ROUNDED)
    table.add_column("Subject", style="cyan")
    table.add_column("Topics", justify="right")
    table.add_column("Questions", justify="right", style="green")
    for subject in subjects:
        table.add_row(
            subject.name,
            str(len(subject.topics)),
            str(sum(len(t.questions) for t in subject.topics)),
        )
    console.print(table)

    local_refs = get_local_media_refs(extract_media_references(data))
    if local_refs:
        console.print(f"[yellow]{len(local_refs)} local media reference(s) need files on import[/]")


@app.command("import")
def import_file(
    file: Annotated[Path, typer.Argument(help="Quiz JSON file")],
    replace: Annotated[
        bool, typer.Option("--replace", help="Replace the library instead of merging")
    ] = False,
) -> None:
    """
    Import subjects into the active profile.

    Local media paths are resolved relative to the quiz file and copied
    into the media store.
    """
    data = _read_json(file)

    async def _import(store: ProfileStore) -> int:
        nonlocal data
        # Media is only stored once the file is known to be valid
        try:
            subjects = validate_subjects(data)
        except ImportValidationError as e:
            console.print(f"[red]✗[/] {e}")
            raise typer.Exit(1)

        local_refs = get_local_media_refs(extract_media_references(data))
        files: dict[str, bytes] = {}
        for ref in local_refs:
            candidate = file.parent / ref.path
            if candidate.is_file():
                files[ref.path] = candidate.read_bytes()
        if files:
            media_store = SQLiteMediaStore(get_settings().media_db_path)
            data = await resolve_local_media(data, files, media_store)
            subjects = validate_subjects(data)

        if replace:
            store.set_subjects(subjects)
        else:
            store.import_subjects(subjects)
        return len(subjects)

    count = _with_store(_import)
    verb = "Replaced library with" if replace else "Imported"
    console.print(f"[green]✓[/] {verb} {count} subject(s)")


@app.command()
def subjects() -> None:
    """List subjects in the active profile."""

    def _list(store: ProfileStore) -> None:
        profile = store.active_profile
        if not profile.subjects:
            console.print("[dim]No subjects yet. Import one with 'requizle import'.[/]")
            return

        table = Table(title=f"Subjects ({profile.name})", box=box.ROUNDED)
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Questions", justify="right")
        table.add_column("Mastery", justify="right")
        for subject in profile.subjects:
            pct = calculate_subject_mastery(subject, profile.progress.get(subject.id))
            table.add_row(
                subject.id,
                subject.name,
                str(sum(len(t.questions) for t in subject.topics)),
                f"[{_mastery_style(pct)}]{pct}%[/]",
            )
        console.print(table)

    _with_store(_list)


@app.command()
def mastery(
    subject_id: Annotated[str | None, typer.Argument(help="Subject ID (all subjects if omitted)")] = None,
) -> None:
    """Show mastery per topic."""

    def _show(store: ProfileStore) -> None:
        profile = store.active_profile
        chosen = [s for s in profile.subjects if subject_id is None or s.id == subject_id]
        if not chosen:
            console.print(f"[red]Unknown subject:[/] {subject_id}")
            raise typer.Exit(1)

        for subject in chosen:
            subject_progress = profile.progress.get(subject.id)
            pct = calculate_subject_mastery(subject, subject_progress)
            table = Table(title=f"{subject.name} - {pct}%", box=box.SIMPLE)
            table.add_column("Topic", style="cyan")
            table.add_column("Questions", justify="right")
            table.add_column("Mastery", justify="right")
            for topic in subject.topics:
                topic_pct = calculate_topic_mastery(topic, subject_progress)
                table.add_row(
                    topic.name,
                    str(len(topic.questions)),
                    f"[{_mastery_style(topic_pct)}]{topic_pct}%[/]",
                )
            console.print(table)

    _with_store(_show)


@app.command("reset-progress")
def reset_progress(
    subject_id: Annotated[str, typer.Argument(help="Subject ID")],
) -> None:
    """Forget all progress for a subject."""
    _with_store(lambda store: store.session.reset_subject_progress(subject_id))
    console.print(f"[green]✓[/] Progress reset for {subject_id}")


@app.command("delete-subject")
def delete_subject(
    subject_id: Annotated[str, typer.Argument(help="Subject ID")],
) -> None:
    """Remove a subject and its progress."""
    _with_store(lambda store: store.delete_subject(subject_id))
    console.print(f"[green]✓[/] Deleted {subject_id}")


# =============================================================================
# Study
# =============================================================================


@app.command()
def study(
    subject_id: Annotated[str, typer.Argument(help="Subject ID")],
    mode: Annotated[
        StudyMode, typer.Option("--mode", "-m", help="Question order")
    ] = StudyMode.RANDOM,
    include_mastered: Annotated[
        bool, typer.Option("--include-mastered", help="Also drill mastered questions")
    ] = False,
    topics: Annotated[
        list[str] | None, typer.Option("--topic", "-t", help="Limit to topic ID (repeatable)")
    ] = None,
    limit: Annotated[
        int, typer.Option("--limit", "-n", help="Stop after this many answers (0 = until done)")
    ] = 0,
) -> None:
    """
    Study a subject.

    Wrong or skipped questions come back a few questions later.
    Type 's' at any prompt to skip.
    """

    async def _study(store: ProfileStore) -> None:
        session = store.session
        session.start_session(subject_id)
        if session.state.subject_id != subject_id:
            console.print(f"[red]Unknown subject:[/] {subject_id}")
            raise typer.Exit(1)

        session.set_include_mastered(include_mastered)
        session.set_mode(mode)
        for topic_id in topics or []:
            session.toggle_topic(topic_id)

        settings = get_settings()
        loader = MediaLoader(
            SQLiteMediaStore(settings.media_db_path),
            retry_attempts=settings.media_retry_attempts,
            retry_delay=settings.media_retry_delay,
            timeout_seconds=settings.media_timeout_seconds,
        )
        try:
            await _study_loop(session, loader, limit)
        finally:
            await loader.close()

    _with_store(_study)


async def _study_loop(session: QuizSession, loader: MediaLoader, limit: int) -> None:
    answered = 0
    correct = 0
    try:
        while session.current_question is not None:
            question = session.current_question
            handler = get_handler(question.type)
            if handler is None:
                session.skip_question()
                continue

            subject = session.subject
            active = get_active_questions(subject, session.state.selected_topic_ids)
            console.print(f"[dim]{len(session.state.queue)} queued · {len(active)} active[/]")
            handler.present(question, console)
            await _show_media(question, loader)

            answer = handler.get_input(question, console)
            if answer is None:
                session.skip_question()
                console.print("[yellow]Skipped. It will come back soon.[/]\n")
                continue

            result = session.submit_answer(answer)
            answered += 1
            if result.correct:
                correct += 1
                console.print("[bold green]✓ Correct[/]")
            else:
                console.print(f"[bold red]✗ Incorrect[/] - answer: {handler.reveal(question)}")
            if result.explanation:
                console.print(f"[dim]{result.explanation}[/]")
            console.print()

            session.next_question()
            if limit and answered >= limit:
                break
    except (KeyboardInterrupt, EOFError):
        console.print("\n[yellow]Session paused.[/]")

    if session.is_exhausted:
        console.print(Panel("All caught up! Every active question is mastered.", border_style="green"))
    if answered:
        console.print(f"Answered {answered}, correct {correct} ({round(100 * correct / answered)}%)")


async def _show_media(question: Question, loader: MediaLoader) -> None:
    if not question.media:
        return
    result = await loader.load(question.media)
    if result.loaded:
        console.print(f"[dim]📎 Media attached ({result.mime_type})[/]")
    else:
        console.print(f"[red]📎 Media failed to load:[/] {result.error}")


# =============================================================================
# Profile Commands
# =============================================================================


@app.command()
def profiles() -> None:
    """List profiles, newest first."""

    def _list(store: ProfileStore) -> None:
        table = Table(title="Profiles", box=box.ROUNDED)
        table.add_column("", width=2)
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Subjects", justify="right")
        for profile in store.list_profiles():
            marker = "[green]●[/]" if profile.id == store.active_profile_id else ""
            table.add_row(marker, profile.id, profile.name, str(len(profile.subjects)))
        console.print(table)

    _with_store(_list)


@app.command("profile-create")
def profile_create(
    name: Annotated[str, typer.Argument(help="Display name")],
) -> None:
    """Create a profile and switch to it."""
    profile = _with_store(lambda store: store.create_profile(name))
    console.print(f"[green]✓[/] Created profile '{profile.name}' ({profile.id})")


@app.command("profile-switch")
def profile_switch(
    profile_id: Annotated[str, typer.Argument(help="Profile ID")],
) -> None:
    """Make another profile active."""

    def _switch(store: ProfileStore) -> bool:
        store.switch_profile(profile_id)
        return store.active_profile_id == profile_id

    if not _with_store(_switch):
        console.print(f"[red]Unknown profile:[/] {profile_id}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Switched to {profile_id}")


@app.command("profile-rename")
def profile_rename(
    profile_id: Annotated[str, typer.Argument(help="Profile ID")],
    name: Annotated[str, typer.Argument(help="New display name")],
) -> None:
    """Rename a profile."""
    _with_store(lambda store: store.rename_profile(profile_id, name))
    console.print(f"[green]✓[/] Renamed {profile_id}")


@app.command("profile-delete")
def profile_delete(
    profile_id: Annotated[str, typer.Argument(help="Profile ID")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete a profile (the last profile is reset instead)."""
    if not yes and not typer.confirm(f"Delete profile {profile_id} and all its progress?"):
        raise typer.Abort()
    _with_store(lambda store: store.delete_profile(profile_id))
    console.print(f"[green]✓[/] Deleted {profile_id}")


@app.command("profile-export")
def profile_export(
    profile_id: Annotated[str, typer.Argument(help="Profile ID")],
    output: Annotated[Path, typer.Argument(help="Destination JSON file")],
) -> None:
    """Export a profile with its library and progress."""
    data = _with_store(lambda store: store.export_profile(profile_id))
    if data is None:
        console.print(f"[red]Unknown profile:[/] {profile_id}")
        raise typer.Exit(1)
    output.write_text(json.dumps(data, indent=2), encoding="utf-8")
    console.print(f"[green]✓[/] Exported to {output}")


@app.command("profile-import")
def profile_import(
    file: Annotated[Path, typer.Argument(help="Exported profile JSON")],
) -> None:
    """Import an exported profile (merges into an existing profile with the same ID)."""
    data = _read_json(file)

    def _import(store: ProfileStore):
        try:
            return store.import_profile(data)
        except ImportValidationError as e:
            console.print(f"[red]✗[/] {e}")
            raise typer.Exit(1)

    profile = _with_store(_import)
    console.print(f"[green]✓[/] Profile '{profile.name}' imported")


@app.command()
def theme(
    value: Annotated[str, typer.Argument(help="light or dark")],
) -> None:
    """Set the display theme."""
    if value not in ("light", "dark"):
        console.print("[red]Theme must be 'light' or 'dark'[/]")
        raise typer.Exit(1)
    _with_store(lambda store: store.set_theme(value))
    console.print(f"[green]✓[/] Theme set to {value}")


@app.command("reset-all")
def reset_all(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete every profile and start over."""
    if not yes and not typer.confirm("Delete ALL profiles and progress?"):
        raise typer.Abort()
    _with_store(lambda store: store.reset_all_data())
    console.print("[green]✓[/] All data reset")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
) -> None:
    """ReQuizle - quiz yourself until it sticks."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="1 MB", retention=3)


def main() -> None:
    """CLI entry point."""
    logger.remove()
    logger.add(sys.stderr, level="WARNING", format="<level>{message}</level>")
    app()


if __name__ == "__main__":
    main()
