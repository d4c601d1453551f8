"""Textual TUI — interactive view of a repository scan."""

from __future__ import annotations

import threading
from typing import Optional

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import DataTable, Footer, Header, Label, Static

from unpushed.git import StatusEvaluator, StatusVerdict
from unpushed.pool import ScanRequest, run_scan
from unpushed.report import ScanResult
from unpushed.theme import reasons_text, verdict_text


class SummaryPanel(Static):
    """Counts card."""

    def update_data(self, result: ScanResult) -> None:
        s = result.summary()
        text = Text()
        text.append("  Repos: ", style="dim")
        text.append(f"{s.total}", style="bold cyan")
        text.append("    Clean: ", style="dim")
        text.append(f"{s.clean}", style="bold green")
        text.append("    Dirty: ", style="dim")
        text.append(f"{s.dirty}", style="bold yellow")
        text.append("    Errors: ", style="dim")
        text.append(f"{s.errored}", style="bold red")
        if s.missing_head or s.skipped_dirs:
            text.append("\n")
            text.append("  Without HEAD: ", style="dim")
            text.append(f"{s.missing_head}", style="bold")
            text.append("    Skipped dirs: ", style="dim")
            text.append(f"{s.skipped_dirs}", style="bold")
        if result.cancelled:
            text.append("\n")
            text.append(f"  Interrupted, {s.discarded} repos not checked", style="bold red")
        self.update(text)


class RepoTable(DataTable):
    """Scrollable list of repositories and their verdicts."""

    def update_data(self, result: ScanResult, *, show_all: bool = False, missing_head: bool = False) -> None:
        self.clear(columns=True)
        self.add_columns("Repo", "Status", "Reasons")
        for entry in result.entries:
            v = entry.verdict
            if missing_head:
                if not v.missing_head:
                    continue
            elif v.is_clean and not show_all:
                continue
            self.add_row(
                result.relpath(entry.path),
                verdict_text(v),
                reasons_text(v),
                key=entry.path,
            )


class UnpushedApp(App):
    """unpushed — forgotten work, found."""

    CSS = """
    #summary {
        height: auto;
        min-height: 3;
        border: solid $accent;
        padding: 0 1;
    }

    #repos {
        border: solid $secondary;
        height: 1fr;
    }

    #loading {
        height: 100%;
        content-align: center middle;
        text-align: center;
    }
    """

    TITLE = "unpushed"
    SUB_TITLE = "forgotten work, found"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("a", "toggle_all", "All / Dirty"),
        Binding("x", "cancel_scan", "Stop Scan"),
    ]

    def __init__(
        self,
        request: ScanRequest,
        evaluator: Optional[StatusEvaluator] = None,
        *,
        missing_head: bool = False,
    ) -> None:
        super().__init__()
        self.request = request
        self.evaluator = evaluator
        self.missing_head = missing_head
        self.show_all = False
        self.result: Optional[ScanResult] = None
        self.cancel = threading.Event()
        self._checked = 0
        self._dirty = 0
        self._count_lock = threading.Lock()
        self._quitting = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Label(f"  Scanning {self.request.root}...", id="loading")
        yield Footer()

    def on_mount(self) -> None:
        self.scan_repos()

    def on_unmount(self) -> None:
        self._quitting = True
        self.cancel.set()

    @work(thread=True, exclusive=True)
    def scan_repos(self) -> None:
        """Scan repos in a background thread."""
        result = run_scan(
            self.request,
            self.evaluator,
            cancel=self.cancel,
            on_verdict=self._on_verdict,
        )
        self.result = result
        if not self._quitting:
            self.call_from_thread(self._render_result, result)

    def _on_verdict(self, path: str, verdict: StatusVerdict) -> None:
        # Runs on pool threads.
        with self._count_lock:
            self._checked += 1
            if verdict.is_dirty:
                self._dirty += 1
            text = f"  Checked {self._checked} repos, {self._dirty} dirty..."
        if not self._quitting:
            self.call_from_thread(self._update_loading, text)

    def _update_loading(self, text: str) -> None:
        for label in self.query("#loading").results(Label):
            label.update(text)

    def _render_result(self, result: ScanResult) -> None:
        """Replace the loading label with the summary and table."""
        self.query("#loading").remove()

        summary = SummaryPanel(id="summary")
        table = RepoTable(id="repos", cursor_type="row", zebra_stripes=True)
        footer = self.query_one(Footer)
        self.mount(summary, before=footer)
        self.mount(table, before=footer)

        summary.update_data(result)
        table.update_data(result, show_all=self.show_all, missing_head=self.missing_head)
        table.focus()

    def action_toggle_all(self) -> None:
        if self.result is None:
            return
        self.show_all = not self.show_all
        for table in self.query(RepoTable):
            table.update_data(self.result, show_all=self.show_all, missing_head=self.missing_head)

    def action_cancel_scan(self) -> None:
        if self.result is None:
            self.cancel.set()
            self._update_loading("  Stopping scan...")

    async def action_quit(self) -> None:
        self._quitting = True
        self.cancel.set()
        self.exit()


def run_tui(
    request: ScanRequest,
    evaluator: Optional[StatusEvaluator] = None,
    *,
    missing_head: bool = False,
) -> Optional[ScanResult]:
    """Launch the TUI; returns the scan result if the scan finished before quitting."""
    app = UnpushedApp(request, evaluator, missing_head=missing_head)
    app.run()
    return app.result
