#!/usr/bin/env python3
"""Internly TUI — terminal dashboard for OJT hours, powered by Textual."""

from __future__ import annotations

import os
import sys
from datetime import date

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, Label, Static, TextArea

from internly import (
    AuthIdentity,
    InternlyError,
    Services,
    build_services,
    compute_burndown,
    filter_logs_in_range,
    group_logs_into_weeks,
    week_bounds,
    workspace_root,
)


CSS = """
Screen {
    background: $surface;
}

#main-layout {
    height: 1fr;
}

#left-pane {
    width: 1fr;
    padding: 0 1;
    border-right: tall $primary-background-darken-2;
}

#right-pane {
    width: 2fr;
    padding: 0 1;
}

.section-title {
    text-style: bold;
    color: $accent;
    padding: 1 0 0 0;
}

#stats-panel {
    height: auto;
    padding: 1 2;
    border: tall $primary-background-darken-2;
}

#reflection-area {
    height: 8;
    min-height: 4;
}

#recent-table, #logs-table, #weeks-table, #burndown-table {
    height: 1fr;
}

#logs-screen, #weeks-screen, #burndown-screen {
    padding: 1 2;
}
"""


def _hours(value: float) -> str:
    return f"{value:g}h"


def _this_week(services: Services) -> tuple[date, date]:
    today = services.controller.today
    return week_bounds(date.fromisoformat(str(today)[:10]) if today else date.today())


# ── Screens ────────────────────────────────────────────────────


class LogsScreen(Vertical):
    """Every daily log, most recent first."""

    def __init__(self, services: Services, **kwargs) -> None:
        super().__init__(**kwargs)
        self.services = services

    def compose(self) -> ComposeResult:
        yield Label("Daily logs", classes="section-title")
        yield DataTable(id="logs-table")

    def on_mount(self) -> None:
        table: DataTable = self.query_one("#logs-table", DataTable)
        table.add_columns("Date", "Activity", "Description", "Supervisor", "Hours")
        for log in self.services.controller.state.logs:
            table.add_row(
                log.entry_date,
                ", ".join(log.activity_type),
                log.task_description[:60],
                log.supervisor,
                _hours(log.daily_hours),
            )


class WeeksScreen(Vertical):
    """Weeks that have logs, with their hour totals."""

    def __init__(self, services: Services, **kwargs) -> None:
        super().__init__(**kwargs)
        self.services = services

    def compose(self) -> ComposeResult:
        yield Label("Weeks", classes="section-title")
        yield DataTable(id="weeks-table")

    def on_mount(self) -> None:
        table: DataTable = self.query_one("#weeks-table", DataTable)
        table.add_columns("Week", "Days", "Hours", "Report")

        state = self.services.controller.state
        reported = {r.week_start for r in state.reports}
        for bucket in group_logs_into_weeks(state.logs):
            logs = filter_logs_in_range(state.logs, bucket.start, bucket.end)
            table.add_row(
                bucket.label,
                str(len(logs)),
                _hours(sum(log.daily_hours for log in logs)),
                "saved" if bucket.start.isoformat() in reported else "",
            )


class BurndownScreen(Vertical):
    """Remaining hours per week against the ideal line."""

    def __init__(self, services: Services, **kwargs) -> None:
        super().__init__(**kwargs)
        self.services = services

    def compose(self) -> ComposeResult:
        yield Label("Burndown", classes="section-title")
        yield DataTable(id="burndown-table")

    def on_mount(self) -> None:
        table: DataTable = self.query_one("#burndown-table", DataTable)
        table.add_columns("Week", "Remaining", "Ideal", "")

        state = self.services.controller.state
        if state.user is None or not state.user.start_date:
            return
        total = state.user.total_required_hours
        points = compute_burndown(
            state.logs,
            total,
            state.user.start_date,
            state.user.end_date,
            today=self.services.controller.today,
        )
        for point in points:
            filled = int(round(20 * point.remaining / total)) if total > 0 else 0
            table.add_row(point.week, _hours(point.remaining), _hours(point.ideal), "█" * filled)


# ── Main app ───────────────────────────────────────────────────


class InternlyApp(App):
    """Internly — OJT hours at a glance."""

    TITLE = "Internly"
    CSS = CSS
    AUTO_FOCUS = None

    BINDINGS = [
        Binding("d", "show_dashboard", "Dashboard"),
        Binding("l", "show_logs", "Logs"),
        Binding("w", "show_weeks", "Weeks"),
        Binding("b", "show_burndown", "Burndown"),
        Binding("r", "focus_reflection", "Reflect"),
        Binding("ctrl+s", "save_report", "Save Report"),
        Binding("u", "refresh_data", "Refresh"),
        Binding("escape", "blur_focus", "Back"),
        Binding("q", "quit_app", "Quit"),
    ]

    current_view: reactive[str] = reactive("dashboard")

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        """Control which bindings appear in the footer based on context."""
        if action in ("focus_reflection", "save_report"):
            return None if self.services.controller.state.read_only else True
        if action == "blur_focus":
            return True if self.focused is not None else None
        return True

    def __init__(self, services: Services, uid: str | None = None) -> None:
        super().__init__()
        self.services = services
        self.uid = uid

    def compose(self) -> ComposeResult:
        yield Header()
        yield Horizontal(
            VerticalScroll(
                Label("Progress", classes="section-title"),
                Static(id="stats-panel"),
                Label("This week's reflection", classes="section-title"),
                TextArea(id="reflection-area"),
                id="left-pane",
                can_focus=False,
            ),
            Vertical(
                Label("Recent logs", classes="section-title"),
                DataTable(id="recent-table"),
                id="right-pane",
            ),
            id="main-layout",
        )
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#recent-table", DataTable).add_columns("Date", "Activity", "Hours")
        self._load_data()

    def _load_data(self) -> None:
        controller = self.services.controller
        if self.uid:
            if self.services.session.current_uid != self.uid:
                self.services.session.sign_in(AuthIdentity(uid=self.uid))
        else:
            controller.load_unauthenticated()
        self._render_state()

    def _render_state(self) -> None:
        state = self.services.controller.state
        stats = state.stats

        if state.user is None:
            self.query_one("#stats-panel", Static).update("No cached profile. Sign in on the web app first.")
        else:
            self.query_one("#stats-panel", Static).update("\n".join([
                f"{state.user.name}",
                f"Rendered:    {_hours(stats.total_rendered)} of {_hours(stats.total_required)}",
                f"Remaining:   {_hours(stats.remaining)}",
                f"Progress:    {stats.progress_percentage:g}%",
                f"This week:   {_hours(stats.hours_this_week)}",
                f"Weekly avg:  {_hours(stats.weekly_average)}",
                f"Days logged: {stats.days_logged}",
            ]))

        table = self.query_one("#recent-table", DataTable)
        table.clear()
        for log in state.logs[:20]:
            table.add_row(log.entry_date, ", ".join(log.activity_type), _hours(log.daily_hours))

        monday, _ = _this_week(self.services)
        current = next((r for r in state.reports if r.week_start == monday.isoformat()), None)
        area = self.query_one("#reflection-area", TextArea)
        area.load_text(current.reflection if current else "")
        area.read_only = state.read_only

        mode = state.status.upper()
        self.sub_title = f"{stats.progress_percentage:g}%  [{mode}]"
        self.refresh_bindings()

    # ── Actions ────────────────────────────────────────────────

    def action_show_dashboard(self) -> None:
        self._switch_to("dashboard")

    def action_show_logs(self) -> None:
        self._switch_to("dashboard" if self.current_view == "logs" else "logs")

    def action_show_weeks(self) -> None:
        self._switch_to("dashboard" if self.current_view == "weeks" else "weeks")

    def action_show_burndown(self) -> None:
        self._switch_to("dashboard" if self.current_view == "burndown" else "burndown")

    def action_focus_reflection(self) -> None:
        if self.current_view != "dashboard":
            self._switch_to("dashboard")
        self.query_one("#reflection-area", TextArea).focus()
        self.refresh_bindings()

    def action_blur_focus(self) -> None:
        self.set_focus(None)
        self.refresh_bindings()

    def action_save_report(self) -> None:
        reflection = self.query_one("#reflection-area", TextArea).text
        self._do_save_report(reflection)

    @work(thread=True)
    def _do_save_report(self, reflection: str) -> None:
        controller = self.services.controller
        monday, sunday = _this_week(self.services)
        try:
            controller.save_weekly_report(monday, sunday, reflection)
        except (InternlyError, ValueError) as e:
            self.call_from_thread(self.notify, f"Error: {e}", title="Report not saved", severity="error")
            return
        queued = " (queued for sync)" if controller.pending else ""
        self.call_from_thread(self.notify, f"Saved week of {monday:%b} {monday.day}{queued}", title="Report saved")

    def action_refresh_data(self) -> None:
        self._do_refresh()

    @work(thread=True)
    def _do_refresh(self) -> None:
        controller = self.services.controller
        if self.services.session.current is not None:
            controller.data_refreshed()
        else:
            controller.load_unauthenticated()
        self.call_from_thread(self._render_state)

    def action_quit_app(self) -> None:
        self.services.controller.close()
        self.exit()

    def _switch_to(self, view: str) -> None:
        main = self.query_one("#main-layout", Horizontal)

        for old in self.query(".overlay-screen"):
            old.remove()

        dashboard = view == "dashboard"
        self.query_one("#left-pane").display = dashboard
        self.query_one("#right-pane").display = dashboard

        if view == "logs":
            main.mount(LogsScreen(self.services, id="logs-screen", classes="overlay-screen"))
        elif view == "weeks":
            main.mount(WeeksScreen(self.services, id="weeks-screen", classes="overlay-screen"))
        elif view == "burndown":
            main.mount(BurndownScreen(self.services, id="burndown-screen", classes="overlay-screen"))

        self.current_view = view


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    root = workspace_root()
    if not root.exists():
        print(f"Workspace not found: {root}")
        print("Set INTERNLY_ROOT to your Internly workspace.")
        sys.exit(1)

    app = InternlyApp(build_services(root), uid=os.environ.get("INTERNLY_UID") or None)
    app.run()


if __name__ == "__main__":
    main()
