from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeRemainingColumn

from summarization.models import PageOutcome

STATUS_STYLES = {
    "success": "green",
    "skipped": "cyan",
    "timeout": "yellow",
    "frozen": "magenta",
    "error": "red",
}


class ProgressTracker:
    """Progress bar over the pages of one batch."""

    def __init__(self, console):
        self.console = console
        self.progress = None
        self.task_id = None

    def create_progress(self):
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeRemainingColumn(),
            console=self.console
        )

    def __enter__(self):
        self.progress = self.create_progress()
        self.progress.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.progress.__exit__(exc_type, exc, tb)
        self.progress = None

    def start(self, description: str, total: int) -> None:
        self.task_id = self.progress.add_task(description, total=total)

    def page_done(self, outcome: PageOutcome) -> None:
        """Advance the bar and print one line for the page."""
        style = STATUS_STYLES.get(outcome.status, "white")
        score = f" score {outcome.compliance_score}" if outcome.compliance_score is not None else ""
        self.progress.console.print(f"  Page {outcome.page_number}: [{style}]{outcome.status}[/{style}]{score}")
        self.progress.advance(self.task_id)
