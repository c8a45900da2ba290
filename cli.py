"""Rhythm Signals — CLI runner.

Runs weekly detection for an organisation and renders live per-team panels
in the terminal using Rich. Shows the emitted signals table when every unit
has finished.

Usage:
    uv run python cli.py demo
    uv run python cli.py detect --org acme
    uv run python cli.py detect --org acme --week 2026-03-02 --from 2026-02-02

`demo` always uses the generated demo organisation. `detect` reads from the
provider the environment selects (RHYTHM_SERIES_URL, RHYTHM_FIXTURE_PATH, or
the bundled fixture).
"""

import argparse
import asyncio
from datetime import date, datetime, timezone

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from core.config import DetectionConfig
from core.runtime import DetectionRuntime
from display.live import LiveDisplay
from integrations.demo_data import DEMO_ORG, build_demo_dataset
from integrations.providers import FixtureSeriesProvider, MetricSeriesProvider, provider_from_env
from schemas.result import BatchResult, UnitStatus
from schemas.signal import Severity
from utils.weeks import previous_week, week_start_of

console = Console()

DEMO_BACKFILL_WEEKS = 4


# ── Results table ─────────────────────────────────────────────────────────────

def _print_results(result: BatchResult) -> None:
    """Render the emitted signals and the run's outcome counts."""
    counts = result.counts()
    suppressed = counts.get(UnitStatus.SUPPRESSED.value, 0)

    if not result.signals:
        console.print("\n[yellow]No signals emitted.[/yellow]")
    else:
        table = Table(title="Signals", show_lines=True, border_style="bright_black")
        table.add_column("Week",       style="dim",  width=10)
        table.add_column("Team",       style="bold", min_width=10)
        table.add_column("Signal",     min_width=20)
        table.add_column("Severity",   width=10, justify="center")
        table.add_column("Confidence", width=12, justify="center")
        table.add_column("z",          width=7,  justify="right")
        table.add_column("Drivers",    style="dim", min_width=24)

        for s in sorted(result.signals, key=lambda s: (s.week_start, -s.severity.rank, s.team_id)):
            conf_color = "green" if s.confidence >= 0.8 else "yellow" if s.confidence >= 0.6 else "red"
            sev_color = {
                Severity.CRITICAL: "red",
                Severity.RISK: "yellow",
                Severity.INFO: "dim",
            }[s.severity]

            table.add_row(
                s.week_start.isoformat(),
                s.team_id,
                s.signal_type,
                f"[{sev_color}]{s.severity.value}[/{sev_color}]",
                f"[{conf_color}]{s.confidence:.0%}[/{conf_color}]",
                f"{s.deviation.z:+.2f}",
                ", ".join(d.label for d in s.drivers) or "-",
            )

        console.print()
        console.print(table)

    summary = ", ".join(f"{k} {v}" for k, v in sorted(counts.items()))
    console.print(f"\n[dim]{summary}[/dim]")
    if suppressed:
        console.print(
            f"[bold blue]◌  {suppressed} unit-week(s) suppressed by the privacy guardrail[/bold blue]"
        )
    if result.failed:
        console.print(f"[bold red]✗  {len(result.failed)} unit-week(s) failed[/bold red]")
    console.print(f"[dim]run: {result.run_id}[/dim]\n")


# ── Entry point ───────────────────────────────────────────────────────────────

async def _run(
    provider: MetricSeriesProvider,
    org_id: str,
    week: date,
    from_week: date | None,
    team_ids: list[str] | None,
    signal_types: list[str] | None,
) -> None:
    config = DetectionConfig.from_env()
    runtime = DetectionRuntime(provider, config=config)

    teams = team_ids or await provider.list_teams(org_id)
    display = LiveDisplay(teams)
    event_queue: asyncio.Queue = asyncio.Queue()

    console.rule("[bold]Rhythm Signals[/bold]")
    console.print(f"  org           [cyan]{org_id}[/cyan]")
    console.print(f"  weeks         [cyan]{from_week or week} → {week}[/cyan]")
    console.print(f"  teams         [cyan]{len(teams)}[/cyan]")
    console.print(f"  signal types  [cyan]{len(signal_types or runtime.registry.get_all())}[/cyan]")
    console.print()

    with display.make_live() as live:
        if from_week is not None:
            batch = asyncio.create_task(runtime.backfill(
                org_id, from_week, week,
                team_ids=teams, signal_types=signal_types, event_queue=event_queue,
            ))
        else:
            batch = asyncio.create_task(runtime.run_week(
                org_id, week,
                team_ids=teams, signal_types=signal_types, event_queue=event_queue,
            ))
        consumer = asyncio.create_task(display.consume(event_queue, live))

        result = await batch
        await event_queue.put(None)   # sentinel: tell consumer to stop
        await consumer

    _print_results(result)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rhythm-signals", description=__doc__.splitlines()[0])
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("demo", help="Backfill the generated demo organisation.")

    detect = commands.add_parser("detect", help="Run detection for one organisation.")
    detect.add_argument("--org", required=True, help="Organisation ID.")
    detect.add_argument("--week", type=date.fromisoformat, help="Week to evaluate (default: last completed).")
    detect.add_argument("--from", dest="from_week", type=date.fromisoformat, help="Backfill from this week.")
    detect.add_argument("--team", dest="teams", action="append", help="Team ID. Repeat for several.")
    detect.add_argument("--type", dest="signal_types", action="append", help="Signal type. Repeat for several.")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = _parse_args(argv)
    last_completed = previous_week(week_start_of(datetime.now(timezone.utc)))

    if args.command == "demo":
        provider = FixtureSeriesProvider.from_dict(build_demo_dataset(end_week=last_completed))
        asyncio.run(_run(
            provider,
            DEMO_ORG,
            last_completed,
            previous_week(last_completed, DEMO_BACKFILL_WEEKS - 1),
            None,
            None,
        ))
        return

    week = week_start_of(args.week) if args.week else last_completed
    asyncio.run(_run(provider_from_env(), args.org, week, args.from_week, args.teams, args.signal_types))


if __name__ == "__main__":
    main()
