from typing import Iterable, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..core.types import CurrentProject, ProjectId, RailItem, StackTask, TaskStatus

STATUS_STYLES = {
    TaskStatus.READY: "cyan",
    TaskStatus.IN_PROGRESS: "yellow",
    TaskStatus.TESTING: "magenta",
    TaskStatus.COMPLETE: "green",
    TaskStatus.BLOCKED: "red",
}

BANNER_STYLES = ["red", "yellow", "green", "cyan", "blue", "magenta"]


def make_console() -> Console:
    return Console(highlight=False)


def print_command_header(console: Console, process_message: str, action_prompt: Optional[str] = None):
    console.print(f"[cyan]{process_message}[/cyan]")
    if action_prompt is not None:
        console.print(f"[bright_black]{action_prompt}[/bright_black]\n")


def print_success(console: Console, message: str):
    console.print(f"[green]{message}[/green]")


def print_warning(console: Console, message: str):
    console.print(f"[yellow]{message}[/yellow]")


def print_error(console: Console, message: str):
    console.print(f"[red]{message}[/red]")


def print_hint(console: Console, message: str):
    console.print(f"[bright_black]{message}[/bright_black]")


def print_debug(console: Console, message: str, enabled: bool):
    if enabled:
        console.print(f"[dim]  debug: {message}[/dim]")


def print_banner(console: Console):
    """Rainbow 'StackRail' wordmark shown after a successful login."""
    text = Text(justify="center")
    for i, ch in enumerate("StackRail"):
        text.append(ch + " ", style=f"bold {BANNER_STYLES[i % len(BANNER_STYLES)]}")
    console.print(Panel(text, border_style="blue", padding=(1, 4)))


# ─── Projects ────────────────────────────────────────────────────────────────

def print_project(console: Console, project: CurrentProject, title: str = "Current Project"):
    lines = [
        f"[bold]{project.project_name}[/bold]  [dim](id {project.id}, nickname: {project.nickname or '-'})[/dim]",
        "",
        f"[bold cyan]Problem[/bold cyan]      {project.problem or '-'}",
        f"[bold cyan]Description[/bold cyan]  {project.description or '-'}",
    ]
    console.print(Panel("\n".join(lines), title=f"[bold blue]{title}[/bold blue]",
                        border_style="blue", padding=(0, 1)))


def print_projects_table(console: Console, projects: Iterable[CurrentProject],
                         current_id: Optional[ProjectId] = None):
    table = Table(title="StackRail Projects", border_style="blue")
    table.add_column("", width=1)
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Nickname")
    table.add_column("Problem")
    for project in projects:
        marker = "*" if current_id is not None and project.id == current_id else ""
        table.add_row(marker, str(project.id), project.project_name,
                      project.nickname, project.problem)
    console.print(table)


# ─── Tasks ───────────────────────────────────────────────────────────────────

def _status_cell(status: TaskStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.label}[/{style}]"


def print_tasks_table(console: Console, tasks: List[StackTask], title: str = "Stack"):
    table = Table(title=title, border_style="blue")
    table.add_column("ID", justify="right")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("C/U/R/Cv/Cf", justify="center", style="dim")
    table.add_column("Tags")
    for task in tasks:
        dims = f"{task.complexity}/{task.users_affected}/{task.retention}/{task.conversion}/{task.confidence}"
        table.add_row(str(task.id), f"{task.score:g}", task.title,
                      _status_cell(task.status), dims, ", ".join(task.tags))
    console.print(table)


def print_rails_table(console: Console, rails: List[RailItem], title: str = "Rail"):
    table = Table(title=title, border_style="bright_black")
    table.add_column("ID", justify="right")
    table.add_column("Title")
    for rail in rails:
        table.add_row(str(rail.id), rail.title)
    console.print(table)


def print_task_detail(console: Console, task: StackTask, title: str = "Task"):
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    table.add_row("ID", str(task.id))
    table.add_row("Title", task.title)
    table.add_row("Description", task.description or "-")
    table.add_row("Status", _status_cell(task.status))
    table.add_row("Score", f"{task.score:g}")
    table.add_row("Complexity", str(task.complexity))
    table.add_row("Users affected", str(task.users_affected))
    table.add_row("Retention", str(task.retention))
    table.add_row("Conversion", str(task.conversion))
    table.add_row("Confidence", str(task.confidence))
    table.add_row("Tags", ", ".join(task.tags) or "-")
    console.print(Panel(table, title=f"[bold blue]{title}[/bold blue]",
                        border_style="blue", padding=(0, 1)))
