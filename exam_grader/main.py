"""
Exam Grader CLI Application.

Provides a command-line interface for grading candidate attempts
against their questions and inspecting the grading setup.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from exam_grader.config import Settings, get_settings
from exam_grader.grading import AttemptAggregator, GradingEngine, build_backends
from exam_grader.models import AttemptReport, AttemptSummary, GradingResult
from exam_grader.questions import (
    QuestionLoadError,
    QuestionValidationError,
    QuestionValidator,
    load_attempt,
    load_questions,
)

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="exam-grader",
    help="An auditable exam answer grading pipeline",
    add_completion=False,
)

console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def grade(
    attempt_file: Annotated[Path, typer.Argument(help="Path to the attempt JSON file")],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file path for the JSON report"),
    ] = None,
    workers: Annotated[
        Optional[int],
        typer.Option("--workers", "-w", min=1, max=32, help="Answers graded concurrently"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed output"),
    ] = False,
) -> None:
    """
    Grade every answer of a candidate attempt.

    Each answer runs through the relevance gate and its type's scoring path;
    the attempt is then aggregated for originality, career mapping and
    integrity flags.
    """
    settings = _load_settings()
    if workers:
        settings = settings.model_copy(update={"max_workers": workers})
    _configure_logging("DEBUG" if verbose else settings.log_level)

    try:
        attempt = load_attempt(attempt_file)

        validator = QuestionValidator()
        validator.validate_or_raise(attempt.questions)
        for warning in validator.warnings(attempt.questions):
            console.print(f"[yellow]Warning:[/yellow] {warning}")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Initializing grading engine...", total=None)
            relevance_checker, rule_scorer, reasoning_scorer = build_backends(settings)
            engine = GradingEngine(
                settings,
                relevance_checker=relevance_checker,
                rule_scorer=rule_scorer,
                reasoning_scorer=reasoning_scorer,
            )

            progress.update(
                task,
                description=f"Grading {len(attempt.questions)} answers... (this may take a moment)",
            )
            results = engine.grade_attempt(attempt.questions, attempt.answers)

            progress.update(task, description="Aggregating attempt...")
            aggregator = AttemptAggregator(reasoning_scorer, settings.career_subject_terms)
            summary = aggregator.aggregate(attempt.questions, attempt.answers, results)

            audits = tuple(
                engine.create_audit(q, attempt.answers.get(q.id, ""), r)
                for q, r in zip(attempt.questions, results)
            )

        report = AttemptReport(
            attempt_id=attempt.attempt_id,
            results=tuple(results),
            summary=summary,
            audits=audits,
        )

        _display_results(report, verbose)

        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(report.model_dump_json(indent=2), encoding="utf-8")
            console.print(f"\n[green]Report saved to:[/green] {output}")

    except QuestionLoadError as e:
        console.print(f"[red]Load Error:[/red] {e}")
        raise typer.Exit(1)
    except QuestionValidationError as e:
        console.print(f"[red]Question Validation Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def validate_questions(
    questions_file: Annotated[
        Path, typer.Argument(help="Path to a question bank or attempt JSON file")
    ],
) -> None:
    """
    Validate a question bank without grading anything.

    Checks that every question is well-formed and gradable.
    """
    try:
        questions = load_questions(questions_file)
    except QuestionLoadError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    validator = QuestionValidator()
    is_valid, issues = validator.validate(questions)

    table = Table(title="Questions")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Points", justify="right")
    table.add_column("Keywords", justify="right")
    table.add_column("Prompt")

    for question in questions:
        table.add_row(
            question.id,
            question.type.value,
            str(question.max_points),
            f"{len(question.mandatory_keywords)}/{len(question.supporting_keywords)}",
            question.prompt[:50],
        )

    console.print(table)
    console.print(f"\n[bold]Total Points:[/bold] {sum(q.max_points for q in questions)}")

    for warning in validator.warnings(questions):
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if is_valid:
        console.print("\n[green]✓ Questions are valid[/green]")
    else:
        console.print("\n[yellow]⚠ Validation issues found:[/yellow]")
        for issue in issues:
            console.print(f"  • {issue}")
        raise typer.Exit(1)


@app.command()
def health() -> None:
    """
    Check if the grading system is operational.

    Verifies configuration and connectivity to both scoring backends.
    """
    settings = _load_settings()
    console.print("[bold]Exam Grader Health Check[/bold]\n")

    console.print("[dim]Checking configuration...[/dim]")
    console.print(f"  Rule-backed backend: {settings.rule_backend_base_url} ({settings.rule_backend_model})")
    console.print(
        f"  Reasoning backend: {settings.reasoning_backend_base_url} ({settings.reasoning_backend_model})"
    )
    console.print(f"  Relevance threshold: {settings.relevance_threshold:.0f}")
    console.print(f"  Relevance failure policy: {settings.relevance_failure_policy.value}")

    console.print("\n[dim]Checking backend connectivity...[/dim]")
    engine = GradingEngine(settings)
    status = engine.health_check()

    for name, reachable in status.items():
        if reachable:
            console.print(f"[green]✓ {name} backend is reachable[/green]")
        else:
            console.print(f"[red]✗ {name} backend is not reachable[/red]")

    if not all(status.values()):
        raise typer.Exit(1)

    console.print("\n[green]All systems operational[/green]")


def _score_color(percentage: float) -> str:
    return "green" if percentage >= 70 else "yellow" if percentage >= 50 else "red"


def _display_results(report: AttemptReport, verbose: bool = False) -> None:
    """Display grading results in formatted tables."""
    summary: AttemptSummary = report.summary

    table = Table(title=f"Attempt {report.attempt_id}")
    table.add_column("Question", style="cyan")
    table.add_column("Type")
    table.add_column("Score", justify="right")
    table.add_column("Relevance", justify="right")
    table.add_column("Flags")

    for result in report.results:
        table.add_row(
            result.question_id,
            result.question_type.value,
            f"[{_score_color(result.percentage)}]{result.score}/{result.max_points}[/]",
            f"{result.relevance_score:.0f}",
            ", ".join(result.integrity_flags.raised) or "-",
        )

    console.print(table)

    color = _score_color(summary.percentage)
    console.print(
        Panel(
            f"[{color}][bold]{summary.total_score} / {summary.total_max}[/bold] "
            f"({summary.percentage:.1f}%)[/{color}]",
            title="Final Score",
        )
    )

    if summary.aggregated_flags.raised:
        console.print(
            f"[yellow]⚠ Flagged for review: {', '.join(summary.aggregated_flags.raised)}[/yellow]"
        )

    if verbose:
        originality = summary.originality_metrics
        console.print(
            Panel(
                f"AI-generated probability: {originality.ai_generated_probability:.0f}%\n"
                f"Point-of-view presence: {originality.pov_presence_score:.0f}/100\n"
                f"Originality: {originality.originality_score:.0f}/100\n"
                f"Answers analyzed: {summary.answers_analyzed}",
                title="Originality",
            )
        )
        if summary.career_mapping:
            career = summary.career_mapping
            console.print(
                Panel(
                    f"AI aptitude: {career.ai_aptitude_score:.0f}/100\n"
                    f"Recommended roles: {', '.join(career.recommended_roles) or '-'}",
                    title="Career Mapping",
                )
            )
        for result in report.results:
            _display_feedback(result)


def _display_feedback(result: GradingResult) -> None:
    console.print(Panel(result.feedback, title=f"Feedback: {result.question_id}"))


if __name__ == "__main__":
    app()
