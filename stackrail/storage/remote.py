"""
StackRail - Remote Access Layer

Thin query/mutation methods over the Supabase PostgREST tables.
Reads and deletes are scoped to the current user; a None user means
"not authenticated" and the method returns None without querying.
Inserts rely on the backend to stamp user_id.

SDK exceptions (PostgrestAPIError, AuthError) propagate to the
command handlers, which report the backend's message.
"""
from typing import Any, Dict, Iterable, List, Optional

from supabase import AsyncClient, AuthError, PostgrestAPIError, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from ..core.types import (
    CurrentProject, ProfileDraft, ProjectId, RailItem, StackTask, TaskStatus,
    normalize_tags, sort_by_priority,
)
from ..utils.config import StackRailConfig

PROFILE_TABLE = "profile"
PROJECT_TABLE = "projects"
RAIL_TABLE = "rail"
STACK_TABLE = "stack"
TAG_TABLE = "tags"


async def create_backend_client(config: StackRailConfig) -> AsyncClient:
    """
    One Supabase client per invocation. Automatic refresh is off:
    the session manager refreshes explicitly and persists the result.
    """
    options = AsyncClientOptions(auto_refresh_token=False, persist_session=False)
    return await acreate_client(config.supabase_url, config.supabase_anon_key, options=options)


class RemoteStore:
    """Project, rail, stack and tag CRUD against an injected Supabase AsyncClient."""

    def __init__(self, client: Any):
        self.client = client

    async def current_user(self) -> Optional[Any]:
        """The authenticated user, or None."""
        try:
            response = await self.client.auth.get_user()
        except AuthError:
            return None
        if response is None:
            return None
        return getattr(response, "user", None)

    async def _user_id(self) -> Optional[str]:
        user = await self.current_user()
        return getattr(user, "id", None) if user is not None else None

    # ─── Profile ──────────────────────────────────────────────────────────

    async def insert_profile(self, profile: ProfileDraft, email: str) -> List[Dict[str, Any]]:
        response = await self.client.table(PROFILE_TABLE).insert({
            "first_name": profile.first_name,
            "surname": profile.surname,
            "username": profile.username,
            "email": email,
        }).execute()
        return response.data

    # ─── Projects ─────────────────────────────────────────────────────────

    async def insert_project(self, project_name: str, problem: str, description: str,
                             nickname: str) -> CurrentProject:
        response = await self.client.table(PROJECT_TABLE).insert({
            "project_name": project_name,
            "problem": problem,
            "description": description,
            "nickname": nickname,
        }).execute()
        return CurrentProject.from_dict(response.data[0])

    async def select_projects(self) -> Optional[List[CurrentProject]]:
        user_id = await self._user_id()
        if user_id is None:
            return None
        response = await (
            self.client.table(PROJECT_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .execute()
        )
        return [CurrentProject.from_dict(row) for row in response.data]

    async def select_project_by(self, column: str, value: Any) -> Optional[List[CurrentProject]]:
        user_id = await self._user_id()
        if user_id is None:
            return None
        response = await (
            self.client.table(PROJECT_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq(column, value)
            .execute()
        )
        return [CurrentProject.from_dict(row) for row in response.data]

    async def select_project_tags(self, project_id: ProjectId) -> Optional[List[str]]:
        """Distinct tags used by any of the user's tasks in this project."""
        user_id = await self._user_id()
        if user_id is None:
            return None
        stack = await (
            self.client.table(STACK_TABLE)
            .select("id")
            .eq("user_id", user_id)
            .eq("project_id", project_id)
            .execute()
        )
        task_ids = [row["id"] for row in stack.data]
        if not task_ids:
            return []
        tags = await self.client.table(TAG_TABLE).select("tag").in_("id", task_ids).execute()
        return sorted({row["tag"] for row in tags.data})

    # ─── Stack ────────────────────────────────────────────────────────────

    async def insert_stack(self, project_id: ProjectId, task: StackTask) -> StackTask:
        """Insert a task as Ready. Tags are saved separately with save_task_tags."""
        row = task.to_row()
        row["project_id"] = project_id
        row["status"] = TaskStatus.READY.value
        response = await self.client.table(STACK_TABLE).insert(row).execute()
        return StackTask.from_row(response.data[0], tags=task.tags)

    async def save_task_tags(self, task_id: int, tags: Iterable[str]) -> bool:
        """Upsert (id, tag) pairs, ignoring ones that already exist. False if the backend refused."""
        rows = [{"tag": tag, "id": task_id} for tag in normalize_tags(list(tags))]
        if not rows:
            return True
        try:
            await (
                self.client.table(TAG_TABLE)
                .upsert(rows, on_conflict="id,tag", ignore_duplicates=True)
                .execute()
            )
        except PostgrestAPIError:
            return False
        return True

    async def select_task_tags(self, task_id: int) -> List[str]:
        response = await self.client.table(TAG_TABLE).select("tag").eq("id", task_id).execute()
        return [row["tag"] for row in response.data]

    async def replace_task_tags(self, task_id: int, tags: Iterable[str]) -> bool:
        """Save the new tags, then drop the ones no longer listed. Nothing is removed if the save fails."""
        wanted = normalize_tags(list(tags))
        if not await self.save_task_tags(task_id, wanted):
            return False
        removed = [tag for tag in await self.select_task_tags(task_id) if tag not in wanted]
        if removed:
            await self.client.table(TAG_TABLE).delete().eq("id", task_id).in_("tag", removed).execute()
        return True

    async def select_stack(self, project_id: ProjectId,
                           statuses: Optional[Iterable[TaskStatus]] = None) -> Optional[List[StackTask]]:
        """Tasks in the project (optionally filtered by status), highest priority first."""
        user_id = await self._user_id()
        if user_id is None:
            return None
        query = (
            self.client.table(STACK_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("project_id", project_id)
        )
        if statuses is not None:
            query = query.in_("status", [s.value for s in statuses])
        response = await query.execute()
        rows = response.data
        if not rows:
            return []

        tags_by_task: Dict[int, List[str]] = {}
        tag_rows = await (
            self.client.table(TAG_TABLE)
            .select("id, tag")
            .in_("id", [row["id"] for row in rows])
            .execute()
        )
        for tag_row in tag_rows.data:
            tags_by_task.setdefault(tag_row["id"], []).append(tag_row["tag"])

        tasks = [StackTask.from_row(row, tags=tags_by_task.get(row["id"], [])) for row in rows]
        return sort_by_priority(tasks)

    async def select_stack_task(self, project_id: ProjectId, task_id: int) -> Optional[List[StackTask]]:
        """Zero or one matching task (with tags), or None when not authenticated."""
        user_id = await self._user_id()
        if user_id is None:
            return None
        response = await (
            self.client.table(STACK_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("project_id", project_id)
            .eq("id", task_id)
            .execute()
        )
        tasks = []
        for row in response.data:
            tasks.append(StackTask.from_row(row, tags=await self.select_task_tags(row["id"])))
        return tasks

    async def update_stack(self, task_id: int, values: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        user_id = await self._user_id()
        if user_id is None:
            return None
        response = await (
            self.client.table(STACK_TABLE)
            .update(values)
            .eq("user_id", user_id)
            .eq("id", task_id)
            .execute()
        )
        return response.data

    async def delete_stack(self, task_id: int) -> Optional[List[Dict[str, Any]]]:
        user_id = await self._user_id()
        if user_id is None:
            return None
        await self.client.table(TAG_TABLE).delete().eq("id", task_id).execute()
        response = await (
            self.client.table(STACK_TABLE)
            .delete()
            .eq("user_id", user_id)
            .eq("id", task_id)
            .execute()
        )
        return response.data

    # ─── Rail ─────────────────────────────────────────────────────────────

    async def insert_rail(self, title: str, project_id: ProjectId) -> RailItem:
        response = await self.client.table(RAIL_TABLE).insert({
            "title": title,
            "project_id": project_id,
        }).execute()
        return RailItem.from_row(response.data[0])

    async def select_project_rails(self, project_id: ProjectId) -> Optional[List[RailItem]]:
        user_id = await self._user_id()
        if user_id is None:
            return None
        response = await (
            self.client.table(RAIL_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("project_id", project_id)
            .execute()
        )
        return sorted((RailItem.from_row(row) for row in response.data), key=lambda r: r.id)

    async def select_rail_by(self, project_id: ProjectId, column: str, value: Any) -> Optional[List[RailItem]]:
        user_id = await self._user_id()
        if user_id is None:
            return None
        response = await (
            self.client.table(RAIL_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("project_id", project_id)
            .eq(column, value)
            .execute()
        )
        return [RailItem.from_row(row) for row in response.data]

    async def delete_rail(self, rail_id: int) -> Optional[List[Dict[str, Any]]]:
        user_id = await self._user_id()
        if user_id is None:
            return None
        response = await (
            self.client.table(RAIL_TABLE)
            .delete()
            .eq("user_id", user_id)
            .eq("id", rail_id)
            .execute()
        )
        return response.data
