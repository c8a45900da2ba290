"""Rich live display for a detection batch, one panel per team.

Subscribes to the executor's asyncio.Queue of PipelineEvents. The runtime
never checks whether a display is attached, so a batch behaves the same with
or without one.

Each team panel lists its signal types as they start and finish, with the
latest outcome for each. Multi-week units (backfills) overwrite a row week by
week, so the panel always shows where each unit has got to.

Usage (see cli._run):
    display = LiveDisplay(team_ids)
    with display.make_live() as live:
        consumer = asyncio.create_task(display.consume(event_queue, live))
        ...
        await event_queue.put(None)
        await consumer
"""

import asyncio
from dataclasses import dataclass, field

from rich import box
from rich.columns import Columns
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from schemas.events import EventType, PipelineEvent

PANEL_WIDTH = 52

# Row style per event type. STARTED rows stay yellow until the unit reports.
_ROW_STYLE = {
    EventType.STARTED: ("●", "yellow"),
    EventType.EMITTED: ("→", "bold"),
    EventType.SUPPRESSED: ("◌", "blue"),
    EventType.SKIPPED: ("·", "dim"),
    EventType.COMPLETE: ("✓", "green"),
    EventType.ERROR: ("✗", "red"),
}

_BORDER = {
    "waiting": "dim",
    "running": "yellow",
    "done": "green",
    "error": "red",
}


@dataclass
class _UnitRow:
    event_type: EventType
    message: str


@dataclass
class _TeamPanel:
    """What one team's panel shows, keyed by signal type."""

    team_id: str
    rows: dict[str, _UnitRow] = field(default_factory=dict)
    emitted: int = 0
    suppressed: int = 0
    elapsed_ms: float = 0.0

    @property
    def phase(self) -> str:
        kinds = {row.event_type for row in self.rows.values()}
        if EventType.ERROR in kinds:
            return "error"
        if EventType.STARTED in kinds:
            return "running"
        return "done" if kinds else "waiting"

    def record(self, signal_type: str, event: PipelineEvent) -> None:
        self.elapsed_ms = event.timestamp_ms
        if event.event_type is EventType.EMITTED:
            self.emitted += 1
        elif event.event_type is EventType.SUPPRESSED:
            self.suppressed += 1
        self.rows[signal_type] = _UnitRow(event.event_type, event.message)


class LiveDisplay:
    """Renders team panels from pipeline events until told to stop."""

    def __init__(self, team_ids: list[str]) -> None:
        self._panels = {team_id: _TeamPanel(team_id) for team_id in team_ids}

    def make_live(self) -> Live:
        return Live(self.render(), refresh_per_second=12, transient=False)

    async def consume(self, queue: asyncio.Queue, live: Live) -> None:
        """Apply events from queue to the panels until a None sentinel arrives.

        Args:
            queue: Queue the executor writes PipelineEvents into.
            live: Active Rich Live context, refreshed after every event.
        """
        while True:
            event = await queue.get()
            if event is None:
                break
            self.apply(event)
            live.update(self.render())

    def apply(self, event: PipelineEvent) -> None:
        team_id, _, signal_type = event.unit.partition("/")
        panel = self._panels.setdefault(team_id, _TeamPanel(team_id))
        panel.record(signal_type, event)

    def render(self) -> Group:
        return Group(Columns([self._render_panel(p) for p in self._panels.values()], width=PANEL_WIDTH))

    # ── Private ───────────────────────────────────────────────────────────────

    @staticmethod
    def _render_panel(panel: _TeamPanel) -> Panel:
        summary = Text.from_markup(
            f"[dim][{panel.elapsed_ms / 1000:.2f}s]  "
            f"{panel.emitted} signal(s), {panel.suppressed} suppressed[/dim]"
        )

        table = Table(box=None, show_header=False, padding=(0, 1), expand=True)
        table.add_column(width=1)
        table.add_column(ratio=2, no_wrap=True)
        table.add_column(ratio=3, style="dim", overflow="ellipsis", no_wrap=True)
        for signal_type, row in sorted(panel.rows.items()):
            icon, style = _ROW_STYLE[row.event_type]
            table.add_row(Text(icon, style=style), Text(signal_type, style=style), row.message)

        return Panel(
            Group(summary, table),
            title=f"[bold]{panel.team_id}[/bold]",
            border_style=_BORDER[panel.phase],
            box=box.ROUNDED,
            width=PANEL_WIDTH,
        )
