"""
Tests for the project and task command handlers against the
in-memory backend: session gating, current-project guards, rail
promotion, and stack ordering for pop/push.
"""
import json
import os
import sys
from dataclasses import replace

import pytest
from supabase import PostgrestAPIError

SCRIPT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, SCRIPT_DIR)

from fake_backend import make_context, output
from stackrail.core import commands, prompts
from stackrail.core.types import CurrentProject, StackTask, TaskStatus

PROJECT = CurrentProject(id=1, project_name="Checkout", problem="Carts abandoned",
                         description="Shop revamp", nickname="shop")


def _logged_in(tmp_path, with_project=True):
    ctx = make_context(tmp_path / "state")
    ctx.store.write_session({"access_token": "a", "refresh_token": "b"})
    ctx.client.seed("projects", dict(PROJECT.to_dict(), user_id="user-1"))
    if with_project:
        ctx.store.save_project(PROJECT)
    return ctx


def _data_queries(ctx):
    return list(ctx.client.queries)


def _seed_task(ctx, title, status=TaskStatus.READY, **scores):
    row = StackTask(title=title, status=status, **scores).to_row()
    row.update(project_id=PROJECT.id, user_id="user-1")
    return ctx.client.seed("stack", row)


def _answer_task(monkeypatch, task: StackTask):
    def fake_ask(console, existing_tags, defaults=None, title=None):
        answer = replace(task, tags=list(task.tags))
        if title:
            answer.title = title
        if defaults is not None:
            answer.id = defaults.id
        return answer
    monkeypatch.setattr(prompts, "ask_stack_task", fake_ask)


# ─── Guards ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_no_session_aborts_before_any_query(tmp_path):
    ctx = make_context(tmp_path / "state")
    ctx.store.save_project(PROJECT)
    await commands.cmd_list(ctx)
    assert "No saved session found" in output(ctx)
    assert _data_queries(ctx) == []


@pytest.mark.asyncio
async def test_no_current_project_reports_and_skips_remote(tmp_path):
    ctx = _logged_in(tmp_path, with_project=False)
    for handler in (commands.cmd_list, commands.cmd_pop, commands.cmd_push):
        await handler(ctx)
    await commands.cmd_rail(ctx, "Something")
    assert output(ctx).count("You are not currently working on a problem.") == 4
    assert _data_queries(ctx) == []


@pytest.mark.asyncio
async def test_corrupted_project_pointer_is_reported(tmp_path):
    ctx = _logged_in(tmp_path, with_project=False)
    with open(ctx.config.project_path, "w", encoding="utf-8") as f:
        json.dump({"id": "abc", "project_name": "Broken"}, f)

    assert commands.load_project_metadata(ctx) is None
    await commands.cmd_list(ctx)
    text = output(ctx)
    assert "corrupted" in text
    assert "stackrail project --switch <id>" in text
    assert _data_queries(ctx) == []


@pytest.mark.asyncio
async def test_missing_current_user_reads_as_not_authenticated(tmp_path):
    ctx = _logged_in(tmp_path)
    ctx.client.auth.get_user_returns_none = True
    await commands.cmd_list(ctx)
    assert "You are not authenticated" in output(ctx)
    assert _data_queries(ctx) == []


# ─── project ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_project_new_sets_current_project(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path, with_project=False)
    monkeypatch.setattr(prompts, "ask_new_project",
                        lambda console: ("Onboarding", "Users churn in week one", "", "onboard"))
    await commands.cmd_project(ctx, new=True)

    current = ctx.store.load_project()
    assert current.project_name == "Onboarding"
    assert current.nickname == "onboard"
    assert isinstance(current.id, int)
    assert "Project Created" in output(ctx)


@pytest.mark.asyncio
async def test_project_switch_by_nickname_and_id(tmp_path):
    ctx = _logged_in(tmp_path, with_project=False)
    other = ctx.client.seed("projects", {"project_name": "Billing", "problem": "Late invoices",
                                         "description": "", "nickname": "billing", "user_id": "user-1"})

    await commands.cmd_project(ctx, switch="billing")
    assert ctx.store.load_project().id == other["id"]

    await commands.cmd_project(ctx, switch=str(PROJECT.id))
    assert ctx.store.load_project().nickname == "shop"


@pytest.mark.asyncio
async def test_project_switch_ignores_other_users(tmp_path):
    ctx = _logged_in(tmp_path, with_project=False)
    ctx.client.seed("projects", {"project_name": "Theirs", "nickname": "theirs", "user_id": "user-2"})
    await commands.cmd_project(ctx, switch="theirs")
    assert "No project found" in output(ctx)
    assert ctx.store.load_project() is None


@pytest.mark.asyncio
async def test_project_list_marks_current(tmp_path):
    ctx = _logged_in(tmp_path)
    ctx.client.seed("projects", {"project_name": "Billing", "nickname": "billing", "user_id": "user-1"})
    await commands.cmd_project(ctx, list_projects=True)
    text = output(ctx)
    assert "Checkout" in text and "Billing" in text
    assert "*" in text


@pytest.mark.asyncio
async def test_project_show_needs_no_backend(tmp_path):
    ctx = _logged_in(tmp_path)
    await commands.cmd_project(ctx)
    assert "Carts abandoned" in output(ctx)
    assert ctx.client.auth.calls == []


# ─── rail / add ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_rail_then_list_rail(tmp_path):
    ctx = _logged_in(tmp_path)
    await commands.cmd_rail(ctx, "Refactor old API code")
    rows = ctx.client.tables["rail"]
    assert rows[0]["title"] == "Refactor old API code"
    assert rows[0]["project_id"] == PROJECT.id

    await commands.cmd_list(ctx, show="rail")
    assert "Refactor old API code" in output(ctx)


@pytest.mark.asyncio
async def test_add_inserts_scored_task_with_tags(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    _answer_task(monkeypatch, StackTask(title="Speed up search", complexity=2, tags=["perf", "search"]))
    await commands.cmd_add(ctx)

    stack = ctx.client.tables["stack"]
    assert len(stack) == 1
    assert stack[0]["status"] == TaskStatus.READY.value
    assert stack[0]["project_id"] == PROJECT.id
    tags = sorted(r["tag"] for r in ctx.client.tables["tags"])
    assert tags == ["perf", "search"]


@pytest.mark.asyncio
async def test_add_bug_always_tags_bug(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    _answer_task(monkeypatch, StackTask(title="Crash on save", tags=["editor"]))
    await commands.cmd_add(ctx, bug=True)
    assert sorted(r["tag"] for r in ctx.client.tables["tags"]) == ["bug", "editor"]


@pytest.mark.asyncio
async def test_add_rail_promotes_and_removes_rail_item(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    rail = ctx.client.seed("rail", {"title": "Dark mode", "project_id": PROJECT.id, "user_id": "user-1"})
    _answer_task(monkeypatch, StackTask(title="ignored", confidence=4))

    await commands.cmd_add(ctx, rail=str(rail["id"]))
    assert ctx.client.tables["stack"][0]["title"] == "Dark mode"
    assert ctx.client.tables["rail"] == []


@pytest.mark.asyncio
async def test_add_rail_by_title_unknown(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    _answer_task(monkeypatch, StackTask(title="x"))
    await commands.cmd_add(ctx, rail="Nope")
    assert "No rail task matching 'Nope'" in output(ctx)
    assert "stack" not in ctx.client.tables


# ─── task ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_task_view_and_bad_ids(tmp_path):
    ctx = _logged_in(tmp_path)
    row = _seed_task(ctx, "Write docs")
    ctx.client.seed("tags", {"id": row["id"], "tag": "docs"})

    await commands.cmd_task(ctx, view=str(row["id"]))
    await commands.cmd_task(ctx, view="999")
    await commands.cmd_task(ctx, view="abc")
    text = output(ctx)
    assert "Write docs" in text and "docs" in text
    assert "Task 999 not found" in text
    assert "Task id must be a number" in text


@pytest.mark.asyncio
async def test_task_modify_updates_fields_and_tags(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    row = _seed_task(ctx, "Old title")
    ctx.client.seed("tags", {"id": row["id"], "tag": "stale"})
    _answer_task(monkeypatch, StackTask(title="New title", complexity=1, tags=["fresh"]))

    await commands.cmd_task(ctx, modify=str(row["id"]))
    assert ctx.client.tables["stack"][0]["title"] == "New title"
    assert ctx.client.tables["stack"][0]["complexity"] == 1
    assert [r["tag"] for r in ctx.client.tables["tags"]] == ["fresh"]


@pytest.mark.asyncio
async def test_task_roll_changes_status(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    row = _seed_task(ctx, "Ship it")
    monkeypatch.setattr(prompts, "ask_status", lambda console, current: TaskStatus.TESTING)
    await commands.cmd_task(ctx, roll=str(row["id"]))
    assert ctx.client.tables["stack"][0]["status"] == TaskStatus.TESTING.value


@pytest.mark.asyncio
async def test_task_delete_requires_confirmation(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    row = _seed_task(ctx, "Maybe delete")
    ctx.client.seed("tags", {"id": row["id"], "tag": "x"})

    monkeypatch.setattr(prompts, "confirm", lambda console, message, default=False: False)
    await commands.cmd_task(ctx, delete=str(row["id"]))
    assert len(ctx.client.tables["stack"]) == 1

    monkeypatch.setattr(prompts, "confirm", lambda console, message, default=False: True)
    await commands.cmd_task(ctx, delete=str(row["id"]))
    assert ctx.client.tables["stack"] == []
    assert ctx.client.tables["tags"] == []


# ─── list / pop / push ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_default_hides_finished_tasks(tmp_path):
    ctx = _logged_in(tmp_path)
    _seed_task(ctx, "Ready one")
    _seed_task(ctx, "Doing one", status=TaskStatus.IN_PROGRESS)
    _seed_task(ctx, "Done one", status=TaskStatus.COMPLETE)

    await commands.cmd_list(ctx)
    text = output(ctx)
    assert "Ready one" in text and "Doing one" in text
    assert "Done one" not in text


@pytest.mark.asyncio
async def test_list_status_filter(tmp_path):
    ctx = _logged_in(tmp_path)
    _seed_task(ctx, "Blocked one", status=TaskStatus.BLOCKED)
    _seed_task(ctx, "Ready one")
    await commands.cmd_list(ctx, show="blocked")
    text = output(ctx)
    assert "Blocked one" in text
    assert "Ready one" not in text


@pytest.mark.asyncio
async def test_list_all_includes_rail(tmp_path):
    ctx = _logged_in(tmp_path)
    _seed_task(ctx, "Done one", status=TaskStatus.COMPLETE)
    ctx.client.seed("rail", {"title": "Idea", "project_id": PROJECT.id, "user_id": "user-1"})
    await commands.cmd_list(ctx, show="all")
    text = output(ctx)
    assert "Done one" in text and "Idea" in text


@pytest.mark.asyncio
async def test_pop_takes_highest_score(tmp_path):
    ctx = _logged_in(tmp_path)
    _seed_task(ctx, "Low", complexity=5)
    _seed_task(ctx, "High", complexity=1, users_affected=5)
    _seed_task(ctx, "Busy", status=TaskStatus.IN_PROGRESS, complexity=1, users_affected=5,
               retention=5, conversion=5, confidence=5)

    await commands.cmd_pop(ctx)
    statuses = {r["title"]: r["status"] for r in ctx.client.tables["stack"]}
    assert statuses["High"] == TaskStatus.IN_PROGRESS.value
    assert statuses["Low"] == TaskStatus.READY.value
    assert "Now working on" in output(ctx)


@pytest.mark.asyncio
async def test_pop_with_empty_stack(tmp_path):
    ctx = _logged_in(tmp_path)
    await commands.cmd_pop(ctx)
    assert "Nothing is ready on the stack." in output(ctx)


@pytest.mark.asyncio
async def test_push_then_pop_returns_pushed_task(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    _seed_task(ctx, "Already maxed", complexity=1, users_affected=5, retention=5, conversion=5, confidence=5)
    monkeypatch.setattr(prompts, "ask_push_task",
                        lambda console, tags: StackTask(title="Hotfix", complexity=1, users_affected=5,
                                                        retention=5, conversion=5, confidence=5,
                                                        tags=["urgent"]))
    await commands.cmd_push(ctx)
    await commands.cmd_pop(ctx)

    statuses = {r["title"]: r["status"] for r in ctx.client.tables["stack"]}
    assert statuses["Hotfix"] == TaskStatus.IN_PROGRESS.value
    assert statuses["Already maxed"] == TaskStatus.READY.value


# ─── Edge cases ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_non_ascii_digit_targets_are_looked_up_by_name(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path, with_project=False)
    await commands.cmd_project(ctx, switch="²")
    assert "No project found with id or nickname '²'" in output(ctx)

    ctx.store.save_project(PROJECT)
    _answer_task(monkeypatch, StackTask(title="x"))
    await commands.cmd_add(ctx, rail="²")
    assert "No rail task matching '²'" in output(ctx)


@pytest.mark.asyncio
async def test_add_rail_warns_when_rail_item_is_not_removed(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    rail = ctx.client.seed("rail", {"title": "Dark mode", "project_id": PROJECT.id, "user_id": "user-1"})
    _answer_task(monkeypatch, StackTask(title="ignored"))

    async def no_user(rail_id):
        return None

    monkeypatch.setattr(ctx.remote, "delete_rail", no_user)
    await commands.cmd_add(ctx, rail=str(rail["id"]))
    assert ctx.client.tables["stack"][0]["title"] == "Dark mode"
    assert len(ctx.client.tables["rail"]) == 1
    assert f"rail task #{rail['id']} could not be removed" in output(ctx)


@pytest.mark.asyncio
async def test_task_modify_keeps_unchanged_tags(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    row = _seed_task(ctx, "Tagged")
    ctx.client.seed("tags", {"id": row["id"], "tag": "keep"})
    ctx.client.seed("tags", {"id": row["id"], "tag": "stale"})
    _answer_task(monkeypatch, StackTask(title="Tagged", tags=["keep", "fresh"]))

    await commands.cmd_task(ctx, modify=str(row["id"]))
    assert sorted(r["tag"] for r in ctx.client.tables["tags"]) == ["fresh", "keep"]


@pytest.mark.asyncio
async def test_task_modify_tag_failure_keeps_old_tags(tmp_path, monkeypatch):
    ctx = _logged_in(tmp_path)
    row = _seed_task(ctx, "Tagged")
    ctx.client.seed("tags", {"id": row["id"], "tag": "stale"})
    ctx.client.fail_on[("tags", "upsert")] = PostgrestAPIError({"message": "tags unavailable", "code": "500"})
    _answer_task(monkeypatch, StackTask(title="Tagged", tags=["fresh"]))

    await commands.cmd_task(ctx, modify=str(row["id"]))
    assert [r["tag"] for r in ctx.client.tables["tags"]] == ["stale"]
    assert "its tags could not be stored" in output(ctx)
