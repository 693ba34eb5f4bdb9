"""Watch command - live connection banner driven by the monitor."""

import asyncio

from studymate.commands.common import console, run_with_app


def _banner(status: dict, max_retries: int) -> str:
    if status["is_checking"]:
        return "[cyan]Checking server connection...[/cyan]"
    if status["is_online"]:
        return "[green]Connected to StudyMate server[/green]"
    attempts = f"Attempt {status['retry_count']}/{max_retries}"
    if status["retry_count"] >= max_retries:
        return f"[red]Server unreachable ({attempts}).[/red] Run 'studymate demo on' to work offline."
    return f"[yellow]Server offline ({attempts}), retrying...[/yellow]"


def run(args):
    """Print every status change until interrupted."""
    async def _watch(app):
        monitor = app.monitor

        def on_status(status):
            console.print(f"[dim]{status['last_check'] or '-'}[/dim] {_banner(status, monitor.max_retries)}")

        monitor.subscribe(on_status)
        await monitor.initialize()
        if args.interval:
            monitor.start_periodic_checks(args.interval)
        await asyncio.Event().wait()

    try:
        return run_with_app(args, _watch)
    except KeyboardInterrupt:
        console.print("\nStopped watching.")
        return 0
