"""
Progress bar for spot-matcher using the Rich library.

The CLI runs a conversion as a background job and polls its status, so
the bar is driven by absolute counters (processed/found/failed) read from
the job snapshot rather than by per-item increments.

Usage:
    from spot_matcher.core.progress import MatchingProgressBar

    with MatchingProgressBar(total=len(tracks)) as progress:
        while not done:
            status = registry.status(job_id)
            progress.set_counts(
                processed=status["progress"]["current"],
                found=status["progress"]["found"],
                failed=status["progress"]["failed"],
            )
"""

from rich import get_console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.theme import Theme


# =============================================================================
# Theme
# =============================================================================

PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})


# =============================================================================
# Matching Progress Bar
# =============================================================================

class MatchingProgressBar:
    """
    Progress bar for a track matching job.

    Displays:
    - Description (e.g., "Matching")
    - Status: ✓ found, ✗ failed
    - Progress bar
    - Percentage and elapsed time

    Example:
        Matching   ✓ 45  ✗ 2      ━━━━━━━━━━━━━━━━━  47% 0:00:12
    """

    def __init__(self, total: int, description: str = "Matching"):
        self.total = total
        self.description = description
        self.completed = 0
        self.found = 0
        self.failed = 0

        self.console = get_console()
        self.console.push_theme(PROGRESS_THEME)

        self.progress = Progress(
            TextColumn("[white]{task.description:<10}"),
            TextColumn("{task.fields[status]:<20}"),
            BarColumn(bar_width=40, finished_style="green"),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )

        self.task_id: TaskID | None = None
        self._started = False

    def __enter__(self) -> "MatchingProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        if not self._started:
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description,
                total=self.total,
                status=self._get_status_text(),
            )
            self._started = True

    def stop(self) -> None:
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def log(self, message: str) -> None:
        """Print a message above the progress bar."""
        self.progress.console.print(message, highlight=False)

    def set_counts(self, processed: int, found: int, failed: int) -> None:
        """
        Move the bar to the given absolute counters.

        Counters only ever grow while a job runs; values lower than the
        current ones are ignored so a stale poll never moves the bar back.
        """
        self.completed = max(self.completed, processed)
        self.found = max(self.found, found)
        self.failed = max(self.failed, failed)

        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._get_status_text(),
            )

    def _get_status_text(self) -> str:
        return f"[green]✓ {self.found}[/green]  [red]✗ {self.failed}[/red]"


__all__ = [
    "PROGRESS_THEME",
    "MatchingProgressBar",
]
