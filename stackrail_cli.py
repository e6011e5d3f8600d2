#!/usr/bin/env python3
"""
StackRail - CLI

Thin front end over the StackRail backend. Parses argv, builds the
application context (config, console, local store, backend client,
session manager) once, and dispatches to a command handler.

Usage:
    stackrail join | verify | login | logout
    stackrail project [--new | --list | --switch <id|nickname>]
    stackrail rail "<title>"
    stackrail add [--rail <id|title> | --bug]
    stackrail task (--view | --modify | --delete | --roll) <id>
    stackrail list [--all | --rail | --ready | --in-progress | --testing | --complete | --blocked]
    stackrail pop | push
"""
import argparse
import asyncio
import os
import sys
from typing import Any, List, Optional

from rich.console import Console
from supabase import AuthError, PostgrestAPIError

from stackrail.__version__ import __version__
from stackrail.core.auth import cmd_join, cmd_login, cmd_logout, cmd_verify
from stackrail.core.commands import cmd_add, cmd_list, cmd_pop, cmd_project, cmd_push, cmd_rail, cmd_task
from stackrail.core.context import AppContext, build_context
from stackrail.core.session_manager import describe_error
from stackrail.core.types import PromptAborted, TaskStatus
from stackrail.storage.remote import create_backend_client
from stackrail.utils import logging as sr_log
from stackrail.utils.config import StackRailConfig

# Status filters for `list`, e.g. --in-progress
STATUS_FLAGS = [status.flag for status in TaskStatus]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stackrail",
        usage="%(prog)s <command> [options]",
        description="StackRail: keep a prioritised stack of tasks per project.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="<command>")
    sub.required = True

    sub.add_parser("pop", help="Start working on the highest scoring task")
    sub.add_parser("push", help="Create a new task and guarantee it has the highest priority")
    sub.add_parser("join", help="Sign up for a StackRail account")
    sub.add_parser("verify", help="Verify your StackRail account with the emailed OTP")
    sub.add_parser("login", help="Log into your StackRail account")
    sub.add_parser("logout", help="Log out of your StackRail account")

    project = sub.add_parser("project", help="Manage your StackRail projects")
    group = project.add_mutually_exclusive_group()
    group.add_argument("--new", action="store_true", help="Create a new project")
    group.add_argument("-l", "--list", dest="list_projects", action="store_true",
                       help="List all available projects")
    group.add_argument("--switch", metavar="ID", help="Switch to a different project by its id or nickname")

    rail = sub.add_parser("rail", help="Add a task to the rail (partially described tasks)",
                          epilog='example: stackrail rail "Refactor old API code"')
    rail.add_argument("title", help="The title of the new rail task")

    add = sub.add_parser("add", help="Add a fully scored task to the stack")
    group = add.add_mutually_exclusive_group()
    group.add_argument("-r", "--rail", metavar="RAIL", help="Promote a rail task by id or title")
    group.add_argument("-b", "--bug", action="store_true", help="Add the task as a bug")

    task = sub.add_parser("task", help="Perform an action on a task by its id")
    group = task.add_mutually_exclusive_group(required=True)
    group.add_argument("--modify", metavar="ID", help="Modify an existing task")
    group.add_argument("--delete", metavar="ID", help="Delete a task")
    group.add_argument("--view", metavar="ID", help="View the details of a task")
    group.add_argument("--roll", metavar="ID", help="Roll a task to a different status")

    listing = sub.add_parser("list", help="List stack items, optionally filtered by status or type")
    group = listing.add_mutually_exclusive_group()
    group.add_argument("-a", "--all", dest="show", action="store_const", const="all",
                       help="List every task and the rail")
    group.add_argument("-r", "--rail", dest="show", action="store_const", const="rail",
                       help="List rail tasks only")
    for flag in STATUS_FLAGS:
        group.add_argument(f"--{flag}", dest="show", action="store_const", const=flag,
                           help=f'List tasks with "{flag}" status')
    return parser


COMMANDS = {
    "pop": lambda ctx, args: cmd_pop(ctx),
    "push": lambda ctx, args: cmd_push(ctx),
    "join": lambda ctx, args: cmd_join(ctx),
    "verify": lambda ctx, args: cmd_verify(ctx),
    "login": lambda ctx, args: cmd_login(ctx),
    "logout": lambda ctx, args: cmd_logout(ctx),
    "project": lambda ctx, args: cmd_project(ctx, new=args.new, list_projects=args.list_projects,
                                             switch=args.switch),
    "rail": lambda ctx, args: cmd_rail(ctx, args.title),
    "add": lambda ctx, args: cmd_add(ctx, rail=args.rail, bug=args.bug),
    "task": lambda ctx, args: cmd_task(ctx, modify=args.modify, delete=args.delete,
                                       view=args.view, roll=args.roll),
    "list": lambda ctx, args: cmd_list(ctx, show=args.show),
}


async def dispatch(ctx: AppContext, args: argparse.Namespace) -> int:
    """Run one command. Returns the process exit code."""
    try:
        await COMMANDS[args.command](ctx, args)
    except PromptAborted:
        sr_log.print_error(ctx.console, "\nInput cancelled.")
        return 1
    except (AuthError, PostgrestAPIError) as e:
        sr_log.print_error(ctx.console, f"Backend error: {describe_error(e)}")
        return 1
    except Exception as e:
        sr_log.print_error(ctx.console, f"Error: {e}")
        if ctx.debug:
            ctx.console.print_exception()
        return 1
    return 0


async def main(argv: Optional[List[str]] = None, client: Any = None,
               config: Optional[StackRailConfig] = None, console: Optional[Console] = None) -> int:
    args = build_parser().parse_args(argv)
    config = config or StackRailConfig.from_env(env_path=os.environ.get("STACKRAIL_ENV_FILE", ".env"))
    console = console or sr_log.make_console()

    if client is None:
        problems = config.validate()
        if problems:
            for problem in problems:
                sr_log.print_error(console, problem)
            sr_log.print_hint(console, "Set SUPABASE_URL and SUPABASE_ANON_KEY in the environment or a .env file.")
            return 1
        client = await create_backend_client(config)

    ctx = build_context(config, client, console)
    sr_log.print_debug(console, f"state dir: {config.state_dir}", config.debug_mode)
    return await dispatch(ctx, args)


def run():
    """Console-script entry point."""
    # Windows consoles default to cp1252
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8")
    if hasattr(sys.stderr, "reconfigure"):
        sys.stderr.reconfigure(encoding="utf-8")
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
