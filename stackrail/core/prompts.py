"""
StackRail - Interactive Prompts

Input collection for the command handlers. Every prompt loops until
its validator accepts the answer; Ctrl-C / EOF raise PromptAborted.
"""
import re
from typing import Callable, List, Optional, Tuple

from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt

from .types import (
    SCORE_MAX, SCORE_MIN, ProfileDraft, PromptAborted, StackTask, TaskStatus, normalize_tags,
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9]+$")
OTP_RE = re.compile(r"^\d{6}$")
MIN_PASSWORD_LENGTH = 8

Validator = Callable[[str], Optional[str]]


# ─── Validators (return an error message, or None when valid) ────────────────

def validate_email(value: str) -> Optional[str]:
    return None if EMAIL_RE.match(value) else "Please enter a valid email address."


def validate_password(value: str) -> Optional[str]:
    if len(value) >= MIN_PASSWORD_LENGTH:
        return None
    return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."


def validate_username(value: str) -> Optional[str]:
    return None if USERNAME_RE.match(value) else "Please enter a valid username (letters and digits only)."


def validate_nickname(value: str) -> Optional[str]:
    if USERNAME_RE.match(value) and not value.isdigit():
        return None
    return "Please enter a nickname of letters and digits (not only digits)."


def validate_otp(value: str) -> Optional[str]:
    return None if OTP_RE.match(value) else "Please enter a valid 6-digit code."


def required(field_name: str) -> Validator:
    def _check(value: str) -> Optional[str]:
        return None if value.strip() else f"Please enter a valid {field_name}."
    return _check


# ─── Primitives ──────────────────────────────────────────────────────────────

def ask_text(console: Console, message: str, validator: Optional[Validator] = None,
             default: Optional[str] = None, password: bool = False) -> str:
    while True:
        try:
            if default is None:
                value = Prompt.ask(message, console=console, password=password)
            else:
                value = Prompt.ask(message, console=console, password=password, default=default)
        except (KeyboardInterrupt, EOFError):
            raise PromptAborted("Input cancelled")
        value = (value or "").strip() if not password else (value or "")
        error = validator(value) if validator else None
        if error is None:
            return value
        console.print(f"[red]{error}[/red]")


def ask_score(console: Console, message: str, default: int = 3) -> int:
    choices = [str(n) for n in range(SCORE_MIN, SCORE_MAX + 1)]
    try:
        return IntPrompt.ask(f"{message} ({SCORE_MIN}-{SCORE_MAX})", console=console,
                             choices=choices, default=default, show_choices=False)
    except (KeyboardInterrupt, EOFError):
        raise PromptAborted("Input cancelled")


def confirm(console: Console, message: str, default: bool = False) -> bool:
    try:
        return Confirm.ask(message, console=console, default=default)
    except (KeyboardInterrupt, EOFError):
        raise PromptAborted("Input cancelled")


# ─── Account Prompts ─────────────────────────────────────────────────────────

def ask_credentials(console: Console) -> Tuple[str, str]:
    email = ask_text(console, "Enter your email", validate_email)
    password = ask_text(console, "Enter your password", validate_password, password=True)
    return email, password


def ask_new_profile(console: Console) -> Tuple[ProfileDraft, str]:
    """Signup details. The password is returned separately and never stored."""
    first_name = ask_text(console, "Enter your first name", required("first name"))
    surname = ask_text(console, "Enter your surname", required("surname"))
    username = ask_text(console, "Enter a username", validate_username)
    email = ask_text(console, "Enter your email", validate_email)
    password = ask_text(console, "Enter your password", validate_password, password=True)
    return ProfileDraft(first_name=first_name, surname=surname, username=username, email=email), password


def ask_otp(console: Console, default_email: Optional[str] = None) -> Tuple[str, str]:
    email = ask_text(console, "Enter your email address", validate_email, default=default_email or None)
    code = ask_text(console, "Enter the 6-digit OTP code", validate_otp)
    return email, code


# ─── Project / Task Prompts ──────────────────────────────────────────────────

def ask_new_project(console: Console) -> Tuple[str, str, str, str]:
    """(project_name, problem, description, nickname)"""
    project_name = ask_text(console, "Project name", required("project name"))
    problem = ask_text(console, "What problem does it solve?", required("problem statement"))
    description = ask_text(console, "Description", default="")
    nickname = ask_text(console, "Nickname (used with --switch)", validate_nickname)
    return project_name, problem, description, nickname


def ask_tags(console: Console, existing_tags: List[str], default: Optional[List[str]] = None) -> List[str]:
    if existing_tags:
        console.print(f"[bright_black]Existing tags: {', '.join(existing_tags)}[/bright_black]")
    raw = ask_text(console, "Tags (comma separated)", default=", ".join(default or []))
    return normalize_tags(raw)


def ask_stack_task(console: Console, existing_tags: List[str],
                   defaults: Optional[StackTask] = None, title: Optional[str] = None) -> StackTask:
    """Prompt for every field of a stack task, pre-filling from defaults."""
    base = defaults or StackTask(title=title or "")
    task_title = ask_text(console, "Title", required("title"), default=title or base.title or None)
    description = ask_text(console, "Description", default=base.description)
    complexity = ask_score(console, "Complexity", base.complexity)
    users_affected = ask_score(console, "Users affected", base.users_affected)
    retention = ask_score(console, "Retention impact", base.retention)
    conversion = ask_score(console, "Conversion impact", base.conversion)
    confidence = ask_score(console, "Confidence", base.confidence)
    tags = ask_tags(console, existing_tags, default=base.tags)
    return StackTask(
        id=base.id,
        project_id=base.project_id,
        title=task_title,
        description=description,
        complexity=complexity,
        users_affected=users_affected,
        retention=retention,
        conversion=conversion,
        confidence=confidence,
        status=base.status,
        tags=tags,
    )


def ask_push_task(console: Console, existing_tags: List[str]) -> StackTask:
    """Title, description and tags only; the scores are forced to the maximum priority."""
    title = ask_text(console, "Title", required("title"))
    description = ask_text(console, "Description", default="")
    tags = ask_tags(console, existing_tags)
    return StackTask(
        title=title,
        description=description,
        complexity=SCORE_MIN,
        users_affected=SCORE_MAX,
        retention=SCORE_MAX,
        conversion=SCORE_MAX,
        confidence=SCORE_MAX,
        tags=tags,
    )


def ask_status(console: Console, current: TaskStatus) -> TaskStatus:
    for status in TaskStatus:
        marker = " (current)" if status == current else ""
        console.print(f"  [bold]{status.value}[/bold] {status.label}{marker}")
    try:
        value = IntPrompt.ask("New status", console=console,
                              choices=[str(s.value) for s in TaskStatus],
                              default=current.value, show_choices=False)
    except (KeyboardInterrupt, EOFError):
        raise PromptAborted("Input cancelled")
    return TaskStatus(value)
