"""Demo command - toggle local-only demo mode."""

from studymate.commands.common import console, run_with_app


def run(args):
    async def _demo(app):
        if args.action == "on":
            app.monitor.enable_demo_mode()
            console.print("Demo mode [bold]enabled[/bold] - tasks are read from and saved to local storage.")
        elif args.action == "off":
            app.monitor.disable_demo_mode()
            console.print("Demo mode [bold]disabled[/bold] - using the server when reachable.")
            unsynced = len(app.store.list_unsynced())
            if unsynced:
                console.print(f"{unsynced} local change(s) pending. Run 'studymate sync' to upload them.")
        else:
            state = "on" if app.store.is_demo_mode() else "off"
            console.print(f"Demo mode is {state}.")
        return 0

    return run_with_app(args, _demo)
