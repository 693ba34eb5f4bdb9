"""Login, logout and reset commands."""

import getpass

from studymate.api_client import ApiError
from studymate.commands.common import console, run_with_app


def login(args):
    password = args.password or getpass.getpass("Password: ")

    async def _login(app):
        try:
            data = await app.client.login(args.email, password)
        except ApiError as e:
            console.print(f"[red]Login failed:[/red] {e}")
            return 1
        user = data.get("user") or {}
        console.print(f"Logged in as [bold]{user.get('name') or user.get('email') or args.email}[/bold]")
        return 0

    return run_with_app(args, _login)


def logout(args):
    async def _logout(app):
        app.client.logout()
        console.print("Logged out.")
        return 0

    return run_with_app(args, _logout)


def reset(args):
    """Clear every locally stored StudyMate entry."""
    if not args.yes:
        answer = input("This deletes cached tasks, session and settings. Continue? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            console.print("Aborted.")
            return 1

    async def _reset(app):
        app.store.clear_all()
        console.print("Local StudyMate data cleared.")
        return 0

    return run_with_app(args, _reset)
