"""dupreaper - Textual watch screen."""

import os
from queue import Empty, Queue

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from dupreaper.models import ProcessRecord, ReapReport
from dupreaper.monitor import DuplicateMonitor, DuplicateSnapshot
from dupreaper.reaper import Reaper


class IdentityHeader(Static):
    """Header widget showing the caller's identity and the last reap."""

    DEFAULT_CSS = """
    IdentityHeader {
        height: auto;
        min-height: 3;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize IdentityHeader."""
        super().__init__(*args, **kwargs)
        self._self_record: ProcessRecord | None = None
        self._duplicate_count: int = 0
        self._last_reap: ReapReport | None = None
        self._error: str = ""

    def on_mount(self) -> None:
        self.update(self.header_text())

    def update_snapshot(self, snapshot: DuplicateSnapshot) -> None:
        """Update the header from a scan."""
        self._self_record = snapshot.self_record
        self._duplicate_count = len(snapshot.duplicates)
        self._error = _describe_abort(snapshot.report)
        self.update(self.header_text())

    def update_reap(self, report: ReapReport) -> None:
        """Record the outcome of a reap."""
        self._last_reap = report
        self._error = _describe_abort(report)
        self.update(self.header_text())

    def header_text(self) -> str:
        """Build the header text."""
        if self._self_record is None:
            line = "Resolving current process..."
        else:
            line = f"PID {self._self_record.pid}  [b]{escape(self._self_record.image_path)}[/b]"
        lines = [line, f"Duplicates: {self._duplicate_count}"]
        if self._last_reap is not None:
            lines.append(f"Last reap: {self._last_reap.count} terminated")
        if self._error:
            lines.append(f"[red]{self._error}[/red]")
        return "\n".join(lines)


class DuplicateTable(Container):
    """Container for the duplicate process table."""

    DEFAULT_CSS = """
    DuplicateTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize DuplicateTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()

    @property
    def pids(self) -> set[int]:
        return set(self._current_pids)

    def compose(self) -> ComposeResult:
        """Compose the duplicate table."""
        yield DataTable(id="duplicate-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#duplicate-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("Image", key="image")

    def update_duplicates(self, records: list[ProcessRecord]) -> None:
        """
        Update the table with the latest duplicates.

        Rows are keyed by pid; gone processes are removed and new ones added.
        """
        table = self.query_one("#duplicate-table", DataTable)
        by_pid = {record.pid: record for record in sorted(records, key=lambda r: r.pid)}
        new_pids = set(by_pid)

        for pid in self._current_pids - new_pids:
            table.remove_row(str(pid))

        for pid, record in by_pid.items():
            if pid in self._current_pids:
                table.update_cell(str(pid), "image", record.image_path)
            else:
                table.add_row(str(pid), record.image_path, key=str(pid))

        self._current_pids = new_pids


class ReaperApp(App):
    """Watch duplicates of the current process and reap them on demand."""

    TITLE = "dupreaper"
    SUB_TITLE = "Duplicate process reaper"

    CSS = """
    Screen {
        layout: vertical;
    }

    #identity {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("k", "reap", "Reap"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(self, reaper: Reaper | None = None, poll_rate: float | None = None) -> None:
        """Initialize the ReaperApp."""
        super().__init__()
        self._reaper = reaper if reaper is not None else Reaper()
        if poll_rate is None:
            poll_rate = self._reaper.config.poll_rate
        self._update_queue: Queue[DuplicateSnapshot] = Queue()
        self._monitor = DuplicateMonitor(self._reaper, self._update_queue, poll_rate=poll_rate)
        self._shown_at = float("-inf")

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield IdentityHeader(id="identity")
        yield DuplicateTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitor when the app is mounted."""
        self.sub_title = f"{self.SUB_TITLE} (pid {os.getpid()})"
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent scan."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._show(snapshot)

    def _show(self, snapshot: DuplicateSnapshot) -> None:
        # A background scan that started before the last shown one is stale.
        if snapshot.taken_at < self._shown_at:
            return
        self._shown_at = snapshot.taken_at
        self.query_one(IdentityHeader).update_snapshot(snapshot)
        self.query_one(DuplicateTable).update_duplicates(snapshot.duplicates)

    def action_refresh(self) -> None:
        """Scan immediately, off the event loop."""
        self.run_worker(self._refresh_in_thread, thread=True, group="scan")

    def action_reap(self) -> None:
        """Terminate every duplicate now, off the event loop."""
        self.run_worker(self._reap_in_thread, thread=True, group="scan")

    def _refresh_in_thread(self) -> None:
        self.call_from_thread(self._show, self._monitor.scan())

    def _reap_in_thread(self) -> None:
        report = self._reaper.reap(dry_run=False)
        self.call_from_thread(self._show_reap, report)
        self._refresh_in_thread()

    def _show_reap(self, report: ReapReport) -> None:
        self.query_one(IdentityHeader).update_reap(report)
        self.notify(f"Terminated {report.count} process(es)")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def _describe_abort(report: ReapReport) -> str:
    if not report.aborted:
        return ""
    return f"Scan aborted: {report.status.value.replace('_', ' ')}"
