"""Progress reporting for long running scans.

Scanning a large PDF takes a while (and the text fallback even longer), so
the command line tool shows an in-place counter while pages are processed.
"""


class ProgressPrinter:
    """Simple progress printer for console output.

    The counter is updated in place using carriage returns. Pages that end up
    in the invalid pile are counted separately so the user sees problems
    before the batch finishes.

    Example:
        >>> progress = ProgressPrinter("Scanning sheets", 3)
        >>> progress.update(1)
        >>> progress.update(2, failed=True)
        >>> progress.done()
        Scanning sheets...Done! (1 invalid)
    """

    def __init__(self, task_name: str, total: int):
        self.task_name = task_name
        self.total = total
        self.failed = 0

    def update(self, current: int, failed: bool = False) -> None:
        """Show "Task...X/Y" for the current (1-based) item."""
        if failed:
            self.failed += 1
        suffix = f" ({self.failed} invalid)" if self.failed else ""
        print(f"{self.task_name}...{current}/{self.total}{suffix}", end='\r', flush=True)

    def done(self) -> None:
        suffix = f" ({self.failed} invalid)" if self.failed else ""
        print(f"{self.task_name}...Done!{suffix}    ")  # Extra spaces clear any remaining digits
