"""CLI progress display for transfers.

This module provides a Rich-based progress display that plugs into the
``progress_callback`` of the sync engine operations.
"""

from typing import Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .progress import ProgressCallback


class TransferProgressDisplay:
    """Rich-based progress display for FTP transfers.

    Downloads report a total of 0 because the remote tree size is unknown,
    so the bar stays indeterminate and only the file count advances.
    """

    def __init__(self, description: str = "Transferring") -> None:
        """Initialize the progress display.

        Args:
            description: Label shown in front of the bar
        """
        self.description = description
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def create_callback(self) -> ProgressCallback:
        """Create a progress callback that updates this display."""
        return self._handle_progress

    def _handle_progress(self, done: int, total: int, path: str) -> None:
        if self._progress is None or self._task is None:
            return
        self._progress.update(
            self._task,
            completed=done,
            total=total if total > 0 else None,
            current=path,
        )

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[current]}"),
            TimeElapsedColumn(),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(self.description, total=None, current="")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            if self._task is not None and exc_type is None:
                self._progress.update(
                    self._task, description=f"{self.description} complete", current=""
                )
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
