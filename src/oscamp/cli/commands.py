"""CLI commands for oscamp.

Commands:
- watch (default): interactive mode, retests on every save
- list: completion status of all exercises
- check: test every exercise once, exit 1 if any failed
- run: test one exercise with full output
- hint: show the hint of one exercise
"""

from __future__ import annotations

import queue
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.text import Text

from oscamp.cli.keyboard import KeyboardReader
from oscamp.cli.render import (
    STATUS_WORD,
    progress_bar,
    render_completion,
    render_list,
    render_session,
    render_summary,
)
from oscamp.config.app_config import AppConfig, load_app_config
from oscamp.config.logging_setup import configure_logging
from oscamp.core.platform import HostInfo
from oscamp.core.progress import JsonProgressStore, Outcome, ProgressTracker
from oscamp.core.registry import (
    AmbiguousExerciseIdError,
    CurriculumError,
    Exercise,
    Registry,
    RegistryLookupError,
    find_curriculum,
    load_registry,
)
from oscamp.core.runner import FailureKind, TestResult, TestRunner, run_all
from oscamp.core.session import Session
from oscamp.core.watcher import FileWatcher

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="oscamp",
    help="OS Camp - Rust & OS Advanced Experiments exercise runner.",
    add_completion=False,
)

console = Console()


# =============================================================================
# HELPERS
# =============================================================================


def _load_registry_or_exit(config: AppConfig, curriculum: Path | None = None) -> Registry:
    """Find and load the curriculum, or exit with a helpful error."""
    try:
        path = curriculum if curriculum is not None else find_curriculum(config.curriculum)
        return load_registry(path, HostInfo.detect())
    except CurriculumError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _resolve_exercise_or_exit(registry: Registry, exercise_id: str) -> Exercise:
    """Resolve an exercise id or unique prefix, or exit with a helpful error."""
    try:
        return registry.resolve(exercise_id)
    except AmbiguousExerciseIdError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    except RegistryLookupError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        console.print("  Use 'oscamp list' to see all exercises")
        raise typer.Exit(code=1)


def _make_runner(config: AppConfig) -> TestRunner:
    return TestRunner(
        config.runner,
        HostInfo.detect(),
        sysroots=config.platform.sysroots,
    )


def _progress_store(config: AppConfig) -> JsonProgressStore | None:
    if not config.progress.persist:
        return None
    return JsonProgressStore(Path(config.progress.state_file))


# =============================================================================
# COMMANDS
# =============================================================================


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
) -> None:
    """Interactive exercise mode when no command is given."""
    configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        watch(no_scan=False, curriculum=None)


@app.command()
def watch(
    no_scan: bool = typer.Option(
        False, "--no-scan", help="Skip the initial pass over all exercises"
    ),
    curriculum: Path | None = typer.Option(
        None, "--curriculum", "-c", help="Curriculum file (default: exercises.toml)"
    ),
) -> None:
    """Interactive exercise mode - retests automatically when files change."""
    config = load_app_config()
    registry = _load_registry_or_exit(config, curriculum)
    runner = _make_runner(config)
    tracker = ProgressTracker(registry)

    store = _progress_store(config)
    if store is not None:
        restored = tracker.restore(store.load())
        logger.debug("progress_restored", count=restored)

    total = len(registry)
    console.print("[bold blue]OS Camp[/bold blue] - Scanning exercise progress...\n")
    if not no_scan:
        run_all(
            registry,
            runner,
            tracker,
            on_start=lambda ex: console.print(
                f"  [{ex.index + 1:2}/{total}] Checking {ex.package:<25}",
                end="\r",
                markup=False,
                highlight=False,
            ),
        )

    events: queue.Queue = queue.Queue()
    watcher = FileWatcher(events, debounce_seconds=config.watch.debounce_seconds)
    session = Session(registry, tracker, runner, watcher=watcher, events=events, store=store)

    if not session.start():
        console.print("\n")
        console.print(render_completion(tracker.aggregate()))
        session.close()
        return

    def render() -> None:
        console.clear()
        console.print(
            render_session(
                session.state,
                registry,
                tracker,
                max_output_lines=config.ui.max_output_lines,
                progress_width=config.ui.progress_width,
            )
        )

    KeyboardReader(events).start()
    try:
        session.run(render, poll_interval=config.watch.poll_interval_seconds)
    except KeyboardInterrupt:
        logger.debug("interrupted")
    finally:
        session.close()

    console.clear()
    console.print("Goodbye! Keep up the good work 💪")


@app.command(name="list")
def list_exercises(
    no_run: bool = typer.Option(
        False, "--no-run", help="Show stored outcomes instead of running the tests"
    ),
) -> None:
    """View completion status of all exercises."""
    config = load_app_config()
    registry = _load_registry_or_exit(config)
    tracker = ProgressTracker(registry)

    store = _progress_store(config)
    if no_run:
        if store is not None:
            tracker.restore(store.load())
    else:
        run_all(registry, _make_runner(config), tracker)
        if store is not None:
            store.save(tracker.snapshot())

    console.print("[bold blue]OS Camp - Exercise list[/bold blue]\n")
    console.print(render_list(registry, tracker))
    console.print(f"\n  Progress: {progress_bar(tracker.aggregate(), config.ui.progress_width)}\n")


@app.command()
def check() -> None:
    """Check all exercises in batch. Exits 1 if any exercise fails."""
    config = load_app_config()
    registry = _load_registry_or_exit(config)
    tracker = ProgressTracker(registry)
    total = len(registry)

    console.print("[bold blue]OS Camp - Check all exercises[/bold blue]\n")

    def report(exercise: Exercise, result: TestResult) -> None:
        line = (
            f"  [{exercise.index + 1:2}/{total}] {escape(exercise.name):<22} "
            f"{STATUS_WORD[result.outcome]}"
        )
        if result.outcome == Outcome.SKIP and result.detail:
            line += f" [dim]({escape(result.detail)})[/dim]"
        elif result.failure in (FailureKind.LAUNCH_FAILED, FailureKind.TIMED_OUT):
            line += f" [dim]({escape(result.detail)})[/dim]"
        console.print(line, highlight=False)

    run_all(registry, _make_runner(config), tracker, on_result=report)

    store = _progress_store(config)
    if store is not None:
        store.save(tracker.snapshot())

    summary = tracker.aggregate()
    console.print(render_summary(summary))
    if summary.failed:
        raise typer.Exit(code=1)


@app.command()
def run(
    exercise_id: str = typer.Argument(..., help="Exercise id (package name) or unique prefix"),
) -> None:
    """Run one exercise and show the full test output."""
    config = load_app_config()
    registry = _load_registry_or_exit(config)
    exercise = _resolve_exercise_or_exit(registry, exercise_id)

    console.print(f"[bold]▶ {escape(exercise.name)} - {escape(exercise.description)}[/bold]")
    console.print(f"  📄 {escape(exercise.path)}\n")

    result = _make_runner(config).run(exercise)

    if result.outcome == Outcome.SKIP:
        console.print(f"[yellow]⏭  Skipped: {escape(result.detail)}[/yellow]")
        return

    console.print(Text.from_ansi(result.output))
    if result.passed:
        console.print("\n[bold green]✅ Test passed![/bold green]")
        return

    if result.failure == FailureKind.LAUNCH_FAILED:
        console.print(f"\n[bold red]❌ {escape(result.detail)}[/bold red]")
    elif result.failure == FailureKind.TIMED_OUT:
        console.print(f"\n[bold red]❌ Test {escape(result.detail)}[/bold red]")
    else:
        console.print("\n[bold red]❌ Test failed[/bold red]")
    console.print(f"  💡 Use 'oscamp hint {escape(exercise.id)}' to view hint")
    raise typer.Exit(code=1)


@app.command()
def hint(
    exercise_id: str = typer.Argument(..., help="Exercise id (package name) or unique prefix"),
) -> None:
    """View the hint of one exercise."""
    config = load_app_config()
    registry = _load_registry_or_exit(config)
    exercise = _resolve_exercise_or_exit(registry, exercise_id)

    console.print(f"[bold yellow]💡 {escape(exercise.name)} - Hint:[/bold yellow]\n")
    console.print(exercise.hint or "No hint for this exercise.", markup=False, highlight=False)


@app.command(name="help")
def help_command(ctx: typer.Context) -> None:
    """Show this help message."""
    console.print(ctx.parent.get_help() if ctx.parent else ctx.get_help(), markup=False)
