#!/usr/bin/env python3
"""StudyMate CLI

Connection status, offline/demo mode and task management for the StudyMate
server.
"""

import argparse
import sys

from studymate.commands import demo, session, status, tasks, watch


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="studymate",
        description="StudyMate - task manager client with offline fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  studymate status               Probe the server once
  studymate watch                Live connection banner
  studymate demo on              Work from local storage only
  studymate tasks list           List tasks (server or local cache)
  studymate tasks add "Read ch. 3" --priority high
  studymate sync                 Upload changes made offline
        """,
    )
    parser.add_argument("-c", "--config", help="Path to a YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    status_parser = subparsers.add_parser("status", help="Show server connection status")
    status_parser.set_defaults(func=status.run)

    diagnose_parser = subparsers.add_parser("diagnose", help="Run connection diagnostics")
    diagnose_parser.add_argument("--logs", type=int, nargs="?", const=20, default=0,
                                 help="Also show the last N connection events (default 20)")
    diagnose_parser.set_defaults(func=status.diagnose)

    watch_parser = subparsers.add_parser("watch", help="Monitor the server connection")
    watch_parser.add_argument("-i", "--interval", type=float, help="Seconds between checks")
    watch_parser.set_defaults(func=watch.run)

    demo_parser = subparsers.add_parser("demo", help="Toggle demo (offline) mode")
    demo_parser.add_argument("action", nargs="?", choices=["on", "off", "status"], default="status")
    demo_parser.set_defaults(func=demo.run)

    # Tasks command
    tasks_parser = subparsers.add_parser("tasks", help="Manage tasks")
    tasks_subparsers = tasks_parser.add_subparsers(dest="tasks_command", help="Task subcommands")

    tasks_list = tasks_subparsers.add_parser("list", help="List tasks")
    tasks_list.set_defaults(func=tasks.list_tasks)

    tasks_add = tasks_subparsers.add_parser("add", help="Add a task")
    tasks_add.add_argument("title", help="Task title")
    tasks_add.add_argument("-d", "--description", help="Task description")
    tasks_add.add_argument("-p", "--priority", choices=["low", "medium", "high"], help="Priority")
    tasks_add.add_argument("--due", help="Due date (ISO 8601)")
    tasks_add.set_defaults(func=tasks.add_task)

    tasks_update = tasks_subparsers.add_parser("update", help="Update a task")
    tasks_update.add_argument("task_id", help="Task ID")
    tasks_update.add_argument("-t", "--title", help="New title")
    tasks_update.add_argument("-s", "--status", choices=["pending", "in_progress", "completed"], help="New status")
    tasks_update.add_argument("-p", "--priority", choices=["low", "medium", "high"], help="New priority")
    tasks_update.set_defaults(func=tasks.update_task)

    tasks_done = tasks_subparsers.add_parser("done", help="Mark a task completed")
    tasks_done.add_argument("task_id", help="Task ID")
    tasks_done.set_defaults(func=tasks.complete_task)

    tasks_delete = tasks_subparsers.add_parser("delete", help="Delete a task")
    tasks_delete.add_argument("task_id", help="Task ID")
    tasks_delete.set_defaults(func=tasks.delete_task)

    sync_parser = subparsers.add_parser("sync", help="Upload tasks changed while offline")
    sync_parser.set_defaults(func=tasks.sync)

    # Session commands
    login_parser = subparsers.add_parser("login", help="Log in to the StudyMate server")
    login_parser.add_argument("email", help="Account email")
    login_parser.add_argument("--password", help="Password (prompted if omitted)")
    login_parser.set_defaults(func=session.login)

    logout_parser = subparsers.add_parser("logout", help="Forget the stored session")
    logout_parser.set_defaults(func=session.logout)

    reset_parser = subparsers.add_parser("reset", help="Clear all local StudyMate data")
    reset_parser.add_argument("-y", "--yes", action="store_true", help="Don't ask for confirmation")
    reset_parser.set_defaults(func=session.reset)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        code = args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code or 0)


if __name__ == "__main__":
    main()
