"""
StackRail - Core Data Types
Shared dataclasses, enums and errors used across the CLI.
Remote rows arrive as plain dicts; these types give them names.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

ProjectId = Union[int, float]

SCORE_MIN = 1
SCORE_MAX = 5
SCORE_DIMENSIONS = ("complexity", "users_affected", "retention", "conversion", "confidence")


# ─── Errors ──────────────────────────────────────────────────────────────────

class StackRailError(Exception):
    """Base class for errors raised by StackRail itself (not the backend SDK)."""


class CorruptedStateError(StackRailError):
    """A local state file parsed as JSON but holds values we cannot use."""


class PromptAborted(StackRailError):
    """The user cancelled an interactive prompt (Ctrl-C / EOF)."""


# ─── Enums ───────────────────────────────────────────────────────────────────

class TaskStatus(Enum):
    READY = 0
    IN_PROGRESS = 1
    TESTING = 2
    COMPLETE = 3
    BLOCKED = 4

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").capitalize()

    @property
    def flag(self) -> str:
        """The `list` filter flag name for this status."""
        return self.name.lower().replace("_", "-")

    @classmethod
    def from_value(cls, value: Any) -> "TaskStatus":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.READY

    @classmethod
    def from_flag(cls, flag: str) -> "TaskStatus":
        for status in cls:
            if status.flag == flag:
                return status
        raise ValueError(f"Unknown status: {flag}")


class StoreErrorKind(Enum):
    IO_ERROR = "io_error"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"


# ─── Local State ─────────────────────────────────────────────────────────────

@dataclass
class StoreResult:
    """Outcome of a local-state write or delete."""
    ok: bool
    kind: Optional[StoreErrorKind] = None
    detail: str = ""

    @classmethod
    def success(cls) -> "StoreResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, kind: StoreErrorKind, detail: str = "") -> "StoreResult":
        return cls(ok=False, kind=kind, detail=detail)

    @classmethod
    def from_os_error(cls, exc: OSError) -> "StoreResult":
        if isinstance(exc, FileNotFoundError):
            kind = StoreErrorKind.NOT_FOUND
        elif isinstance(exc, PermissionError):
            kind = StoreErrorKind.PERMISSION
        else:
            kind = StoreErrorKind.IO_ERROR
        return cls.failure(kind, str(exc))


@dataclass
class ProfileDraft:
    """Identity fields captured at signup, kept until the OTP is verified."""
    first_name: str
    surname: str
    username: str
    email: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "first_name": self.first_name,
            "surname": self.surname,
            "username": self.username,
            "email": self.email,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ProfileDraft"]:
        """Build a draft from the profile file contents; None if unusable."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                first_name=str(data["first_name"]),
                surname=str(data["surname"]),
                username=str(data["username"]),
                email=str(data.get("email") or ""),
            )
        except KeyError:
            return None


def coerce_project_id(value: Any) -> ProjectId:
    """Return value as a finite number, or raise CorruptedStateError."""
    if isinstance(value, bool):
        raise CorruptedStateError(f"Project id is not numeric: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, (float, str)):
        try:
            number = float(value)
        except ValueError:
            raise CorruptedStateError(f"Project id is not numeric: {value!r}")
        if not math.isfinite(number):
            raise CorruptedStateError(f"Project id is not finite: {value!r}")
        return int(number) if number.is_integer() else number
    raise CorruptedStateError(f"Project id is not numeric: {value!r}")


@dataclass
class CurrentProject:
    """Cached snapshot of the project the user is working in."""
    id: ProjectId
    project_name: str = ""
    problem: str = ""
    description: str = ""
    nickname: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_name": self.project_name,
            "problem": self.problem,
            "description": self.description,
            "nickname": self.nickname,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CurrentProject":
        """
        Build from the project file contents or a `projects` row.
        Raises CorruptedStateError when the id is missing or non-numeric.
        """
        if not isinstance(data, dict):
            raise CorruptedStateError("Project data is not a JSON object")
        if "id" not in data:
            raise CorruptedStateError("Project data has no id")
        return cls(
            id=coerce_project_id(data["id"]),
            project_name=data.get("project_name") or "",
            problem=data.get("problem") or "",
            description=data.get("description") or "",
            nickname=data.get("nickname") or "",
        )


# ─── Remote Records ──────────────────────────────────────────────────────────

@dataclass
class RailItem:
    """A partially described task waiting to be promoted to the stack."""
    id: int
    title: str
    project_id: Optional[ProjectId] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RailItem":
        return cls(id=row["id"], title=row.get("title") or "", project_id=row.get("project_id"))


def compute_priority_score(
    complexity: int,
    users_affected: int,
    retention: int,
    conversion: int,
    confidence: int,
) -> float:
    """
    Priority of a stack task.

    Reach (users affected) times impact (retention + conversion),
    weighted by confidence and divided by effort (complexity).
    All dimensions are 1-5, so the score ranges 0.4 to 250.
    """
    complexity = max(complexity, SCORE_MIN)
    raw = users_affected * (retention + conversion) * confidence / complexity
    return round(raw, 2)


@dataclass
class StackTask:
    """A fully scored task record."""
    title: str
    description: str = ""
    complexity: int = 3
    users_affected: int = 3
    retention: int = 3
    conversion: int = 3
    confidence: int = 3
    status: TaskStatus = TaskStatus.READY
    tags: List[str] = field(default_factory=list)
    id: Optional[int] = None
    project_id: Optional[ProjectId] = None

    @property
    def score(self) -> float:
        return compute_priority_score(
            self.complexity, self.users_affected, self.retention,
            self.conversion, self.confidence,
        )

    def to_row(self) -> Dict[str, Any]:
        """Columns written on insert/update (id and ownership excluded)."""
        return {
            "title": self.title,
            "description": self.description,
            "complexity": self.complexity,
            "users_affected": self.users_affected,
            "retention": self.retention,
            "conversion": self.conversion,
            "confidence": self.confidence,
            "status": self.status.value,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any], tags: Optional[List[str]] = None) -> "StackTask":
        return cls(
            id=row.get("id"),
            project_id=row.get("project_id"),
            title=row.get("title") or "",
            description=row.get("description") or "",
            complexity=int(row.get("complexity") or SCORE_MIN),
            users_affected=int(row.get("users_affected") or SCORE_MIN),
            retention=int(row.get("retention") or SCORE_MIN),
            conversion=int(row.get("conversion") or SCORE_MIN),
            confidence=int(row.get("confidence") or SCORE_MIN),
            status=TaskStatus.from_value(row.get("status")),
            tags=list(tags or []),
        )


def sort_by_priority(tasks: List[StackTask]) -> List[StackTask]:
    """Highest score first; on ties the newest task (largest id) wins."""
    return sorted(tasks, key=lambda t: (t.score, t.id or 0), reverse=True)


def normalize_tags(raw: Union[str, List[str]]) -> List[str]:
    """Split a comma-separated tag string, strip blanks, keep first occurrence."""
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    tags: List[str] = []
    for part in parts:
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags
