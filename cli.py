import typer
from rich.console import Console
from rich.table import Table
from typing import Optional
from datetime import datetime, timezone

from spaced_review.config import settings
from spaced_review.database import init_db
from spaced_review.errors import SchedulerError
from spaced_review.log import configure_logging
from spaced_review.schemas import AnswerSubmission, BatchRequest
from spaced_review.service import get_service
from spaced_review.sm2 import quality_from_signal

app = typer.Typer(help="Spaced Review CLI - SM-2 review scheduling per learner and item")
console = Console()


@app.callback()
def main(log_level: str = typer.Option(settings.log_level, help="Log level (DEBUG, INFO, WARNING...)")):
    configure_logging(log_level)


def _parse_time(value: Optional[str]) -> datetime:
    """Parse an ISO timestamp (naive means UTC); default: now"""
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        console.print(f"[red]✗[/red] Invalid timestamp '{value}'. Use ISO format, e.g. 2026-03-20T09:00")
        raise typer.Exit(code=1)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _fail(error: SchedulerError):
    console.print(f"[red]✗[/red] {error}")
    raise typer.Exit(code=1)


@app.command()
def init():
    """Initialize database tables"""
    init_db()
    console.print("[green]✓[/green] Database initialized successfully!")


@app.command()
def reset_db():
    """Delete all records and events and reinitialize database (WARNING: irreversible!)"""
    confirm = typer.confirm("⚠️  This will DELETE ALL DATA. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    from spaced_review.database import reset_db as drop_and_create
    console.print("[yellow]Dropping and recreating all tables...[/yellow]")
    drop_and_create()
    console.print("[green]✓[/green] Database reset complete! All data deleted.")


@app.command()
def add_item(
    learner: str = typer.Option(..., prompt="Learner ID"),
    item: str = typer.Option(..., prompt="Item ID"),
    subject: Optional[str] = typer.Option(None, help="Subject label (e.g., English)"),
    at: Optional[str] = typer.Option(None, help="First exposure time (ISO), default: now")
):
    """Start tracking an item for a learner (due immediately)"""
    service = get_service()
    try:
        record = service.store.create_if_absent(learner, item, _parse_time(at), subject=subject)
    except SchedulerError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Tracking {record.item_id} ({record.subject or 'no subject'}) for {record.learner_id}")
    console.print(f"  Status: {record.status.value}")
    console.print(f"  Due: {record.due_at.isoformat()}")


@app.command()
def due(
    learner: str = typer.Option(..., prompt="Learner ID"),
    size: int = typer.Option(settings.default_batch_size, help="Maximum batch size"),
    subject: Optional[str] = typer.Option(None, help="Only items of this subject"),
    at: Optional[str] = typer.Option(None, help="Query time (ISO), default: now")
):
    """Show the next batch of items due for review"""
    service = get_service()
    try:
        batch = service.request_batch(
            BatchRequest(learner_id=learner, now=_parse_time(at), batch_size=size, subject=subject)
        )
    except SchedulerError as e:
        _fail(e)

    if not batch:
        console.print(f"[green]✓[/green] {learner} is caught up - nothing due")
        return

    console.print(f"\n[bold]Next batch for {learner}[/bold] ({len(batch)} items)")
    for i, item_id in enumerate(batch, 1):
        console.print(f"  {i}. {item_id}")


@app.command()
def answer(
    learner: str = typer.Option(..., prompt="Learner ID"),
    item: str = typer.Option(..., prompt="Item ID"),
    quality: Optional[int] = typer.Option(None, help="Quality rating 0-5"),
    correct: Optional[bool] = typer.Option(None, "--correct/--wrong", help="Derive quality from correctness"),
    hints: int = typer.Option(0, help="Hints used (with --correct/--wrong)"),
    response_ms: Optional[int] = typer.Option(None, help="Response time in ms (with --correct/--wrong)"),
    expected_ms: int = typer.Option(10000, help="Expected response time in ms"),
    revision: Optional[int] = typer.Option(None, help="Revision the learner was shown; rejects stale answers"),
    retry: bool = typer.Option(False, "--retry", help="Re-score and retry if another write lands first"),
    subject: Optional[str] = typer.Option(None, help="Subject label if the item is new"),
    at: Optional[str] = typer.Option(None, help="Review time (ISO), default: now")
):
    """Record an answer and reschedule the item"""
    if quality is None:
        if correct is None:
            console.print("[red]✗[/red] Give either --quality or --correct/--wrong")
            raise typer.Exit(code=1)
        quality = quality_from_signal(correct, hints, response_ms, expected_ms)

    service = get_service()
    submission = AnswerSubmission(
        learner_id=learner,
        item_id=item,
        quality=quality,
        now=_parse_time(at),
        expected_revision=revision,
        subject=subject
    )
    try:
        if retry:
            result = service.submit_answer_with_retry(submission)
        else:
            result = service.submit_answer(submission)
    except SchedulerError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Answer recorded!")
    console.print(f"  Item: {result.item_id}")
    console.print(f"  Quality: {result.quality}/5")
    console.print(f"  Status: {result.status.value}")
    console.print(f"  Next review: {result.due_at.isoformat()} (in {result.interval_days:g} days)")
    console.print(f"  Easiness: {result.ease_factor:.2f}")
    if result.mastered:
        console.print(f"  [bold magenta]Mastered![/bold magenta]")


@app.command()
def progress(
    learner: str = typer.Option(..., prompt="Learner ID"),
    at: Optional[str] = typer.Option(None, help="Query time (ISO), default: now")
):
    """View learning progress and items due for review"""
    service = get_service()
    now = _parse_time(at)
    try:
        summary = service.learner_stats(learner, now)
        due_items = service.store.list_due(learner, now, 20)
    except SchedulerError as e:
        _fail(e)

    console.print(f"\n[bold]Learning Progress - {learner}[/bold]\n")
    console.print(f"[cyan]Statistics:[/cyan]")
    console.print(f"  Total items tracked: {summary.total_items}")
    console.print(f"  Items due for review: {summary.due_now}")
    console.print(f"  Mastered: {summary.mastered_items} ({summary.mastery_percentage}%)")
    console.print(f"  Accuracy: {summary.overall_accuracy}% over {summary.total_reviews} reviews")
    console.print(f"  By status: " + ", ".join(f"{k} {v}" for k, v in summary.by_status.items()))

    if summary.by_subject:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Subject", style="cyan")
        table.add_column("Total", justify="right")
        table.add_column("Mastered", style="green", justify="right")
        table.add_column("Due", style="red", justify="right")
        for name, subject_stats in sorted(summary.by_subject.items()):
            table.add_row(name, str(subject_stats.total), str(subject_stats.mastered), str(subject_stats.due))
        console.print(table)

    if due_items:
        console.print(f"\n[yellow]Items Due for Review:[/yellow]")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Item", style="green")
        table.add_column("Due", style="yellow")
        table.add_column("Days Overdue", style="red")
        table.add_column("Lapses", justify="right")

        for record in due_items:
            days_overdue = (now - record.due_at).days
            table.add_row(
                record.item_id[:50],
                record.due_at.strftime("%Y-%m-%d %H:%M"),
                str(days_overdue) if days_overdue > 0 else "Today",
                str(record.lapse_count)
            )
        console.print(table)
        if summary.due_now > len(due_items):
            console.print(f"[dim]... and {summary.due_now - len(due_items)} more items[/dim]")


@app.command()
def forecast(
    learner: str = typer.Option(..., prompt="Learner ID"),
    days: int = typer.Option(settings.forecast_days, help="Days to look ahead"),
    at: Optional[str] = typer.Option(None, help="Start time (ISO), default: now")
):
    """Show how many reviews fall due on each upcoming day"""
    service = get_service()
    try:
        upcoming = service.review_forecast(learner, _parse_time(at), days=days)
    except (SchedulerError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan", width=12)
    table.add_column("Reviews", style="yellow", justify="right")
    table.add_column("Items", style="green")
    for day in upcoming:
        table.add_row(day.date.isoformat(), str(day.count), ", ".join(day.item_ids))
    console.print(table)


@app.command()
def item(
    learner: str = typer.Option(..., prompt="Learner ID"),
    item_id: str = typer.Option(..., "--item", prompt="Item ID")
):
    """View mastery details for one item"""
    service = get_service()
    try:
        detail = service.item_detail(learner, item_id)
    except SchedulerError as e:
        _fail(e)

    console.print(f"\n[bold]{detail.item_id}[/bold] ({detail.subject or 'no subject'})")
    console.print(f"  Level: {detail.level} ({detail.level_name})")
    console.print(f"  Status: {detail.status.value}")
    console.print(f"  Accuracy: {detail.accuracy}% ({detail.correct_reviews}/{detail.total_reviews})")
    console.print(f"  Interval: {detail.interval_days:g} days, easiness {detail.ease_factor:.2f}")
    console.print(f"  Repetitions: {detail.repetition_count}, lapses: {detail.lapse_count}")
    console.print(f"  Next review: {detail.due_at.isoformat()}")


@app.command()
def export(
    learner: str = typer.Option(..., prompt="Learner ID"),
    output: Optional[str] = typer.Option(None, help="Write JSON lines to this file instead of stdout")
):
    """Export review history (records and scoring events) as JSON lines"""
    service = get_service()
    try:
        lines = [entry.model_dump_json() for entry in service.export_history(learner)]
    except SchedulerError as e:
        _fail(e)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
        console.print(f"[green]✓[/green] Exported {len(lines)} items to {output}")
    else:
        for line in lines:
            typer.echo(line)


if __name__ == "__main__":
    app()
