"""Status and diagnose commands - show server connectivity."""

from rich.table import Table

from studymate.commands.common import console, run_with_app
from studymate.diagnostics import run_diagnostics


def _status_table(status: dict) -> Table:
    table = Table(title="StudyMate Connection", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    online = "[green]online[/green]" if status["is_online"] else "[red]offline[/red]"
    table.add_row("Server", online)
    table.add_row("Attempts", f"{status['retry_count']}/{status['max_retries']}")
    table.add_row("Last check", status["last_check"] or "never")
    table.add_row("Demo mode", "on" if status["is_demo_mode"] else "off")
    return table


def run(args):
    """Probe the server once and print the connection status."""
    async def _status(app):
        await app.monitor.check_connection(force=True)
        status = app.monitor.get_status()
        console.print(_status_table(status))
        if not status["is_online"] and status["retry_count"] >= status["max_retries"]:
            console.print("[yellow]Server unreachable. Run 'studymate demo on' to work offline.[/yellow]")
        return 0 if status["is_online"] else 2

    return run_with_app(args, _status)


def diagnose(args):
    """Run diagnostics and optionally dump the connection event log."""
    async def _diagnose(app):
        report = await run_diagnostics(app.monitor, app.store)
        console.print("[bold]StudyMate diagnostics[/bold]")
        for line in report.summary_lines():
            console.print(line)

        if args.logs:
            table = Table(title="Connection events")
            table.add_column("Time")
            table.add_column("Event")
            table.add_column("Data")
            for entry in app.event_log.entries()[-args.logs:]:
                table.add_row(entry["timestamp"], entry["type"], str(entry.get("data") or ""))
            console.print(table)

        return 1 if report.has_critical_failure else 0

    return run_with_app(args, _diagnose)
