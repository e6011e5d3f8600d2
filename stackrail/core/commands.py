"""
StackRail - Project & Task Commands

Every handler gates on the session manager before touching the
backend, and every project-scoped handler reads the current-project
pointer before issuing a query. A None from the remote store means
the backend no longer sees an authenticated user.
"""
from typing import List, Optional

from supabase import PostgrestAPIError

from ..utils import logging as sr_log
from . import prompts
from .context import AppContext
from .session_manager import describe_error
from .types import CorruptedStateError, CurrentProject, RailItem, StackTask, TaskStatus, normalize_tags

BUG_TAG = "bug"
NOT_AUTHENTICATED_MESSAGE = "You are not authenticated. Please login: `stackrail login`"


# ─── Shared Guards ───────────────────────────────────────────────────────────

def load_project_metadata(ctx: AppContext) -> Optional[CurrentProject]:
    """Current project pointer, with absence and corruption reported to the user."""
    try:
        project = ctx.store.load_project()
    except CorruptedStateError as e:
        sr_log.print_error(ctx.console, f"Your current project data is corrupted: {e}")
        sr_log.print_hint(ctx.console, "Switch to a project to repair it: `stackrail project --switch <id>`")
        return None
    if project is None:
        sr_log.print_warning(ctx.console, "You are not currently working on a problem.")
        sr_log.print_hint(ctx.console, "Start one with `stackrail project --new` "
                                       "or pick one with `stackrail project --switch <id>`")
    return project


async def _require_project(ctx: AppContext) -> Optional[CurrentProject]:
    if not await ctx.sessions.authenticate_session():
        return None
    return load_project_metadata(ctx)


def _not_authenticated(ctx: AppContext):
    sr_log.print_error(ctx.console, NOT_AUTHENTICATED_MESSAGE)


def _parse_id(ctx: AppContext, raw: str, what: str = "Task") -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        sr_log.print_error(ctx.console, f"{what} id must be a number, got '{raw}'.")
        return None


async def _fetch_task(ctx: AppContext, project: CurrentProject, raw_id: str) -> Optional[StackTask]:
    task_id = _parse_id(ctx, raw_id)
    if task_id is None:
        return None
    tasks = await ctx.remote.select_stack_task(project.id, task_id)
    if tasks is None:
        _not_authenticated(ctx)
        return None
    if not tasks:
        sr_log.print_error(ctx.console, f"Task {task_id} not found in project '{project.project_name}'.")
        return None
    return tasks[0]


async def _project_tags(ctx: AppContext, project: CurrentProject) -> List[str]:
    return await ctx.remote.select_project_tags(project.id) or []


async def _save_tags(ctx: AppContext, task: StackTask):
    if not await ctx.remote.save_task_tags(task.id, task.tags):
        sr_log.print_warning(ctx.console, f"Task {task.id} was saved but its tags could not be stored.")


# ─── project ─────────────────────────────────────────────────────────────────

async def cmd_project(ctx: AppContext, new: bool = False, list_projects: bool = False,
                      switch: Optional[str] = None):
    if new:
        await _create_project(ctx)
    elif list_projects:
        await _list_projects(ctx)
    elif switch is not None:
        await _switch_project(ctx, switch)
    else:
        project = load_project_metadata(ctx)
        if project is not None:
            sr_log.print_project(ctx.console, project)


async def _create_project(ctx: AppContext):
    console = ctx.console
    if not await ctx.sessions.authenticate_session():
        return
    sr_log.print_command_header(console, "--- Creating a new StackRail project ---",
                                "Describe the problem you are working on.")
    project_name, problem, description, nickname = prompts.ask_new_project(console)
    project = await ctx.remote.insert_project(project_name, problem, description, nickname)

    result = ctx.store.save_project(project)
    if not result.ok:
        sr_log.print_warning(console, f"Project created, but it could not be set as current: {result.detail}")
    sr_log.print_project(console, project, title="Project Created")


async def _list_projects(ctx: AppContext):
    if not await ctx.sessions.authenticate_session():
        return
    projects = await ctx.remote.select_projects()
    if projects is None:
        _not_authenticated(ctx)
        return
    if not projects:
        sr_log.print_warning(ctx.console, "You have no projects yet. Create one with `stackrail project --new`")
        return
    try:
        current = ctx.store.load_project()
    except CorruptedStateError:
        current = None
    sr_log.print_projects_table(ctx.console, projects, current_id=current.id if current else None)


async def _switch_project(ctx: AppContext, target: str):
    if not await ctx.sessions.authenticate_session():
        return
    if target.isdecimal():
        projects = await ctx.remote.select_project_by("id", int(target))
    else:
        projects = await ctx.remote.select_project_by("nickname", target)
    if projects is None:
        _not_authenticated(ctx)
        return
    if not projects:
        sr_log.print_error(ctx.console, f"No project found with id or nickname '{target}'.")
        sr_log.print_hint(ctx.console, "See your projects with `stackrail project --list`")
        return

    project = projects[0]
    result = ctx.store.save_project(project)
    if not result.ok:
        sr_log.print_error(ctx.console, f"Could not save the current project: {result.detail}")
        return
    sr_log.print_success(ctx.console, f"Switched to project '{project.project_name}' (id {project.id}).")


# ─── rail / add ──────────────────────────────────────────────────────────────

async def cmd_rail(ctx: AppContext, title: str):
    """Drop a title onto the rail for later promotion."""
    title = title.strip()
    if not title:
        sr_log.print_error(ctx.console, "A rail task needs a title.")
        return
    project = await _require_project(ctx)
    if project is None:
        return
    rail = await ctx.remote.insert_rail(title, project.id)
    sr_log.print_success(ctx.console, f"Added to rail: #{rail.id} {rail.title}")


async def _find_rail(ctx: AppContext, project: CurrentProject, target: str) -> Optional[RailItem]:
    if target.isdecimal():
        rails = await ctx.remote.select_rail_by(project.id, "id", int(target))
    else:
        rails = await ctx.remote.select_rail_by(project.id, "title", target)
    if rails is None:
        _not_authenticated(ctx)
        return None
    if not rails:
        sr_log.print_error(ctx.console, f"No rail task matching '{target}'.")
        sr_log.print_hint(ctx.console, "See your rail with `stackrail list --rail`")
        return None
    if len(rails) > 1:
        sr_log.print_warning(ctx.console, f"Several rail tasks are titled '{target}'; promote one by id:")
        sr_log.print_rails_table(ctx.console, rails)
        return None
    return rails[0]


async def cmd_add(ctx: AppContext, rail: Optional[str] = None, bug: bool = False):
    """
    Add a fully scored task to the stack.

    With `rail`, the rail item is promoted: the stack task is inserted
    first and the rail row deleted afterwards. The two steps are not
    atomic, so a failed delete leaves the item in both places.
    """
    console = ctx.console
    project = await _require_project(ctx)
    if project is None:
        return

    rail_item = None
    if rail is not None:
        rail_item = await _find_rail(ctx, project, rail)
        if rail_item is None:
            return

    heading = "--- Promoting a rail task ---" if rail_item else (
        "--- Reporting a bug ---" if bug else "--- Adding a task to the stack ---")
    sr_log.print_command_header(console, heading, f"Project: {project.project_name}")

    existing_tags = await _project_tags(ctx, project)
    task = prompts.ask_stack_task(console, existing_tags, title=rail_item.title if rail_item else None)
    if bug:
        task.tags = normalize_tags([BUG_TAG] + task.tags)

    created = await ctx.remote.insert_stack(project.id, task)
    await _save_tags(ctx, created)

    if rail_item is not None:
        try:
            removed = await ctx.remote.delete_rail(rail_item.id)
        except PostgrestAPIError as e:
            sr_log.print_warning(console, f"Task added, but rail task #{rail_item.id} could not be removed: "
                                          f"{describe_error(e)}")
        else:
            if removed is None:
                sr_log.print_warning(console, f"Task added, but rail task #{rail_item.id} could not be removed: "
                                              f"{NOT_AUTHENTICATED_MESSAGE}")
    sr_log.print_success(console, f"\nAdded task #{created.id} '{created.title}' (score {created.score:g}).")


# ─── task ────────────────────────────────────────────────────────────────────

async def cmd_task(ctx: AppContext, modify: Optional[str] = None, delete: Optional[str] = None,
                   view: Optional[str] = None, roll: Optional[str] = None):
    project = await _require_project(ctx)
    if project is None:
        return
    raw_id = next(v for v in (modify, delete, view, roll) if v is not None)
    task = await _fetch_task(ctx, project, raw_id)
    if task is None:
        return

    if view is not None:
        sr_log.print_task_detail(ctx.console, task)
    elif modify is not None:
        await _modify_task(ctx, project, task)
    elif delete is not None:
        await _delete_task(ctx, task)
    else:
        await _roll_task(ctx, task)


async def _modify_task(ctx: AppContext, project: CurrentProject, task: StackTask):
    sr_log.print_command_header(ctx.console, f"--- Modifying task #{task.id} ---",
                                "Press enter to keep the current value.")
    existing_tags = await _project_tags(ctx, project)
    updated = prompts.ask_stack_task(ctx.console, existing_tags, defaults=task)
    if await ctx.remote.update_stack(task.id, updated.to_row()) is None:
        _not_authenticated(ctx)
        return
    if not await ctx.remote.replace_task_tags(task.id, updated.tags):
        sr_log.print_warning(ctx.console, f"Task {task.id} was updated but its tags could not be stored.")
    sr_log.print_success(ctx.console, f"Task #{task.id} updated (score {updated.score:g}).")


async def _delete_task(ctx: AppContext, task: StackTask):
    sr_log.print_task_detail(ctx.console, task)
    if not prompts.confirm(ctx.console, f"Delete task #{task.id}?", default=False):
        sr_log.print_hint(ctx.console, "Nothing deleted.")
        return
    if await ctx.remote.delete_stack(task.id) is None:
        _not_authenticated(ctx)
        return
    sr_log.print_success(ctx.console, f"Task #{task.id} deleted.")


async def _roll_task(ctx: AppContext, task: StackTask):
    new_status = prompts.ask_status(ctx.console, task.status)
    if new_status == task.status:
        sr_log.print_hint(ctx.console, f"Task #{task.id} is already {new_status.label}.")
        return
    if await ctx.remote.update_stack(task.id, {"status": new_status.value}) is None:
        _not_authenticated(ctx)
        return
    sr_log.print_success(ctx.console, f"Task #{task.id} rolled from {task.status.label} to {new_status.label}.")


# ─── list ────────────────────────────────────────────────────────────────────

async def cmd_list(ctx: AppContext, show: Optional[str] = None):
    """
    show: None (ready + in progress), "all", "rail", or a status flag
    such as "in-progress".
    """
    project = await _require_project(ctx)
    if project is None:
        return
    console = ctx.console

    if show == "rail":
        await _list_rails(ctx, project)
        return

    if show is None:
        statuses = [TaskStatus.READY, TaskStatus.IN_PROGRESS]
        title = f"Stack: {project.project_name}"
    elif show == "all":
        statuses = None
        title = f"All tasks: {project.project_name}"
    else:
        status = TaskStatus.from_flag(show)
        statuses = [status]
        title = f"{status.label}: {project.project_name}"

    tasks = await ctx.remote.select_stack(project.id, statuses)
    if tasks is None:
        _not_authenticated(ctx)
        return
    if tasks:
        sr_log.print_tasks_table(console, tasks, title=title)
    else:
        sr_log.print_hint(console, "No tasks to show.")

    if show == "all":
        await _list_rails(ctx, project)


async def _list_rails(ctx: AppContext, project: CurrentProject):
    rails = await ctx.remote.select_project_rails(project.id)
    if rails is None:
        _not_authenticated(ctx)
        return
    if rails:
        sr_log.print_rails_table(ctx.console, rails, title=f"Rail: {project.project_name}")
    else:
        sr_log.print_hint(ctx.console, "The rail is empty.")


# ─── pop / push ──────────────────────────────────────────────────────────────

async def cmd_pop(ctx: AppContext):
    """Start working on the highest-priority ready task."""
    project = await _require_project(ctx)
    if project is None:
        return
    ready = await ctx.remote.select_stack(project.id, [TaskStatus.READY])
    if ready is None:
        _not_authenticated(ctx)
        return
    if not ready:
        sr_log.print_warning(ctx.console, "Nothing is ready on the stack.")
        sr_log.print_hint(ctx.console, "Add a task with `stackrail add` or `stackrail push`")
        return

    task = ready[0]
    if await ctx.remote.update_stack(task.id, {"status": TaskStatus.IN_PROGRESS.value}) is None:
        _not_authenticated(ctx)
        return
    task.status = TaskStatus.IN_PROGRESS
    sr_log.print_task_detail(ctx.console, task, title="Now working on")


async def cmd_push(ctx: AppContext):
    """Create a task at maximum priority; being the newest, it pops first."""
    project = await _require_project(ctx)
    if project is None:
        return
    sr_log.print_command_header(ctx.console, "--- Pushing a task to the top of the stack ---",
                                f"Project: {project.project_name}")
    existing_tags = await _project_tags(ctx, project)
    task = prompts.ask_push_task(ctx.console, existing_tags)
    created = await ctx.remote.insert_stack(project.id, task)
    await _save_tags(ctx, created)
    sr_log.print_success(ctx.console, f"\nPushed task #{created.id} '{created.title}' to the top of the stack.")
