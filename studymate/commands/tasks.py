"""Tasks and sync commands - task CRUD with offline fallback."""

from rich.table import Table

from studymate.commands.common import console, run_with_app


async def _connect(app) -> None:
    """Demo mode never touches the network; otherwise probe once for routing."""
    if not app.store.is_demo_mode():
        await app.monitor.check_connection(force=True)
    source = "local storage" if app.tasks.uses_local_data else "server"
    console.print(f"[dim]Using {source}[/dim]")


def _task_table(tasks: list[dict]) -> Table:
    table = Table(title=f"Tasks ({len(tasks)})")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Sync")
    for t in tasks:
        sync = "local" if t.get("isLocal") else ("pending" if t.get("needsSync") else "")
        table.add_row(
            str(t.get("id", "")),
            t.get("title", ""),
            t.get("status", ""),
            t.get("priority", ""),
            sync,
        )
    return table


def list_tasks(args):
    async def _list(app):
        await _connect(app)
        tasks = await app.tasks.list_tasks()
        console.print(_task_table(tasks))
        return 0

    return run_with_app(args, _list)


def add_task(args):
    async def _add(app):
        await _connect(app)
        data = {"title": args.title}
        if args.description:
            data["description"] = args.description
        if args.priority:
            data["priority"] = args.priority.upper()
        if args.due:
            data["dueDate"] = args.due
        task = await app.tasks.create_task(data)
        console.print(f"Created task [bold]{task['id']}[/bold]: {task.get('title', '')}")
        return 0

    return run_with_app(args, _add)


def update_task(args):
    async def _update(app):
        await _connect(app)
        updates = {}
        if args.title:
            updates["title"] = args.title
        if args.status:
            updates["status"] = args.status.upper()
        if args.priority:
            updates["priority"] = args.priority.upper()
        if not updates:
            console.print("[yellow]Nothing to update.[/yellow]")
            return 1
        task = await app.tasks.update_task(args.task_id, updates)
        if task is None:
            console.print(f"[red]Task not found:[/red] {args.task_id}")
            return 1
        console.print(f"Updated task [bold]{task['id']}[/bold]")
        return 0

    return run_with_app(args, _update)


def complete_task(args):
    args.title = None
    args.priority = None
    args.status = "COMPLETED"
    return update_task(args)


def delete_task(args):
    async def _delete(app):
        await _connect(app)
        if await app.tasks.delete_task(args.task_id):
            console.print(f"Deleted task {args.task_id}")
            return 0
        console.print(f"[red]Task not deleted:[/red] {args.task_id}")
        return 1

    return run_with_app(args, _delete)


def sync(args):
    """Upload tasks created or changed while offline."""
    async def _sync(app):
        await _connect(app)
        result = await app.tasks.sync_pending()
        console.print(f"Synced {result.synced} task(s), {result.failed} failed.")
        for err in result.errors:
            console.print(f"  [red]{err}[/red]")
        return 1 if result.failed else 0

    return run_with_app(args, _sync)
