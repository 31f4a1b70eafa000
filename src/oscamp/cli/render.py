"""Rendering for the interactive session and the batch commands.

Everything here is a pure projection of SessionState, the ProgressTracker
and the Registry into rich renderables. Nothing is cached between frames.
"""

from __future__ import annotations

from rich.console import Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from oscamp.core.progress import Outcome, ProgressSummary, ProgressTracker
from oscamp.core.registry import Exercise, Registry
from oscamp.core.runner import FailureKind, TestResult
from oscamp.core.session import SessionState, ViewMode

TITLE = "OS Camp"
SUBTITLE = "Rust & OS Advanced Experiments"

STATUS_MARKUP = {
    Outcome.PASS: "[green]✅[/green]",
    Outcome.FAIL: "[red]❌[/red]",
    Outcome.SKIP: "[yellow]⏭[/yellow] ",
    Outcome.NOT_RUN: "[dim]··[/dim]",
}

STATUS_WORD = {
    Outcome.PASS: "[green]✅ PASS[/green]",
    Outcome.FAIL: "[red]❌ FAIL[/red]",
    Outcome.SKIP: "[yellow]⏭  SKIP[/yellow]",
    Outcome.NOT_RUN: "[dim]NOT RUN[/dim]",
}


def progress_bar(summary: ProgressSummary, width: int = 20) -> str:
    """Markup for a fixed-width bar of passed exercises."""
    filled = summary.passed * width // summary.total if summary.total else 0
    bar = "█" * filled + "░" * (width - filled)
    text = f"[green]{bar}  {summary.passed}/{summary.total} ({summary.percent}%)[/green]"
    if summary.skipped:
        text += f" [yellow]{summary.skipped} skipped[/yellow]"
    return text


def tail_output(output: str, max_lines: int = 30) -> tuple[int, list[str]]:
    """Last max_lines lines of output and how many were omitted."""
    lines = output.splitlines()
    omitted = max(len(lines) - max_lines, 0)
    return omitted, lines[omitted:]


def render_header(
    exercise: Exercise,
    registry: Registry,
    summary: ProgressSummary,
    width: int = 20,
) -> RenderableType:
    module = registry.module(exercise.module)
    lines = [
        f"[bold blue]─── {TITLE} ─── {SUBTITLE} ───[/bold blue]",
        f"  Progress: {progress_bar(summary, width)}",
        "",
        f"  [bold]▶ Exercise {exercise.index + 1}/{summary.total}: {escape(exercise.name)}[/bold]",
        f"    [dim]Module:[/dim] {escape(module.name)}",
    ]
    if exercise.description:
        lines.append(f"    [cyan]{escape(exercise.description)}[/cyan]")
    lines.append(f"    [dim]📄 {escape(exercise.path)}[/dim]")
    return Text.from_markup("\n".join(lines))


def render_failure(result: TestResult, max_lines: int = 30) -> RenderableType:
    if result.failure == FailureKind.LAUNCH_FAILED:
        title = "❌ Could not launch tests"
    elif result.failure == FailureKind.TIMED_OUT:
        title = f"❌ Tests {escape(result.detail)}"
    else:
        title = "❌ Test failed"

    parts: list[RenderableType] = [Text.from_markup(f"\n  [bold red]{title}[/bold red]\n")]
    omitted, lines = tail_output(result.output, max_lines)
    if omitted:
        parts.append(Text.from_markup(f"  [dim]... omitted {omitted} lines ...[/dim]"))
    for line in lines:
        parts.append(Text("  ") + Text.from_ansi(line))
    return Group(*parts)


def render_hint(exercise: Exercise) -> RenderableType:
    hint = exercise.hint or "No hint for this exercise."
    return Panel(
        Text(hint, style="yellow"),
        title="[bold yellow]💡 Hint[/bold yellow]",
        title_align="left",
        expand=False,
    )


def render_list(
    registry: Registry,
    tracker: ProgressTracker,
    current_index: int | None = None,
) -> RenderableType:
    """Exercises grouped by module with their outcome."""
    lines: list[str] = []
    for module in registry.modules():
        lines.append(f"  [yellow]\\[{escape(module.name)}][/yellow]")
        for exercise in registry.exercises_in(module.id):
            marker = "▶" if exercise.index == current_index else " "
            status = STATUS_MARKUP[tracker.outcome_of(exercise.id)]
            lines.append(
                f"  {marker} {status} {exercise.index + 1:2}. {escape(exercise.name):<22} "
                f"([dim]{escape(exercise.package)}[/dim])"
            )
    return Text.from_markup("\n".join(lines))


def render_controls(watch_warning: str | None = None) -> RenderableType:
    lines = [
        "",
        "[dim]  ─────────────────────────────────────────[/dim]",
        "  [bold]h[/bold] hint  [bold]l[/bold] list  "
        "[bold]n[/bold]/[bold]p[/bold] next/prev  "
        "[bold]r[/bold] retest  [bold]q[/bold] quit",
    ]
    if watch_warning:
        lines.append(f"  [yellow]⚠ File watching unavailable: {escape(watch_warning)}[/yellow]")
        lines.append("  [dim]Press r to retest manually[/dim]")
    else:
        lines.append("  [dim]📡 Watching for file changes, automatically retests after saving[/dim]")
    return Text.from_markup("\n".join(lines))


def render_completion(summary: ProgressSummary) -> RenderableType:
    """Congratulation line; skipped exercises are not reported as passed."""
    if summary.skipped:
        message = (
            f"🎉 Congratulations! All {summary.total} exercises completed "
            f"({summary.passed} passed, {summary.skipped} skipped)!"
        )
    else:
        message = f"🎉 Congratulations! All {summary.total} exercises passed!"
    return Text.from_markup(f"  [bold green]{message}[/bold green]")


def render_session(
    state: SessionState,
    registry: Registry,
    tracker: ProgressTracker,
    max_output_lines: int = 30,
    progress_width: int = 20,
) -> RenderableType:
    """Full interactive frame for the current state."""
    exercise = registry.exercise_at(state.current_index)
    summary = tracker.aggregate()
    parts: list[RenderableType] = [
        render_header(exercise, registry, summary, progress_width)
    ]

    if state.notice:
        parts.append(Text.from_markup(f"\n  [cyan]➡  {escape(state.notice)}[/cyan]"))

    if state.mode == ViewMode.LIST:
        parts.append(Text.from_markup("\n  [bold blue]Exercise list:[/bold blue]\n"))
        parts.append(render_list(registry, tracker, state.current_index))
    else:
        result = state.last_result
        if state.running == exercise.id:
            parts.append(Text.from_markup(f"\n  [yellow]⏳ Testing {escape(exercise.package)}...[/yellow]"))
        elif not exercise.runnable:
            parts.append(
                Text.from_markup(f"\n  [yellow]⏭  Skipped: {escape(exercise.skip_reason or '')}[/yellow]")
            )
        elif result is not None and result.exercise_id == exercise.id:
            if result.passed:
                parts.append(Text.from_markup(
                    f"\n  [bold green]✅ Exercise '{escape(exercise.name)}' passed![/bold green]"
                ))
            else:
                parts.append(render_failure(result, max_output_lines))

        if state.mode == ViewMode.HINT:
            parts.append(render_hint(exercise))

    if summary.is_complete:
        parts.append(Text(""))
        parts.append(render_completion(summary))

    parts.append(render_controls(state.watch_warning))
    return Group(*parts)


def render_summary(summary: ProgressSummary) -> RenderableType:
    """Closing lines of the check command."""
    lines = [
        "",
        f"  [bold]Result: {summary.passed}/{summary.total} passed[/bold]"
        f" ([red]{summary.failed} failed[/red], [yellow]{summary.skipped} skipped[/yellow])",
    ]
    if summary.failed == 0 and summary.not_run == 0:
        lines.append("  [green]🎉 All passed![/green]")
    elif summary.failed:
        lines.append(f"  [yellow]{summary.failed} exercise(s) still to finish, keep going![/yellow]")
    return Text.from_markup("\n".join(lines))
