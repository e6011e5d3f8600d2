"""
StackRail - Local State Store

Three small JSON files under the per-user config directory:
the session token bundle, the signup profile draft, and the
current-project pointer. Every write replaces the whole file.

Reads turn absence and malformed JSON into None. Permission errors
on read propagate so a misconfigured directory is not mistaken for
"logged out". Writes and deletes return a tagged StoreResult.

No locking: concurrent invocations race and the last writer wins.
"""
import json
import os
import stat
import tempfile
from typing import Any, Dict, Optional

from ..core.types import CurrentProject, ProfileDraft, StoreErrorKind, StoreResult
from ..utils.config import StackRailConfig


class LocalStateStore:
    """File-backed holder for the session, profile draft and current project."""

    def __init__(self, config: StackRailConfig):
        self.state_dir = config.state_dir
        self.session_path = config.session_path
        self.profile_path = config.profile_path
        self.project_path = config.project_path

    # ─── Filesystem Primitives ────────────────────────────────────────────

    def directory_exists(self) -> bool:
        """True if the config directory exists. Non-absence errors propagate."""
        try:
            return stat.S_ISDIR(os.stat(self.state_dir).st_mode)
        except FileNotFoundError:
            return False

    def file_exists(self, path: str) -> bool:
        """True if path is a regular file. Non-absence errors propagate."""
        try:
            return stat.S_ISREG(os.stat(path).st_mode)
        except FileNotFoundError:
            return False

    def ensure_directory(self) -> StoreResult:
        """Create the config directory if needed. Already existing is success."""
        try:
            os.makedirs(self.state_dir, exist_ok=True)
        except FileExistsError as e:
            # Path exists but is not a directory
            return StoreResult.failure(StoreErrorKind.IO_ERROR, str(e))
        except OSError as e:
            return StoreResult.from_os_error(e)
        return StoreResult.success()

    def read_json(self, path: str) -> Optional[Any]:
        """Parsed contents of path, or None when missing or malformed."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, IsADirectoryError):
            return None
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    def write_json(self, path: str, payload: Any) -> StoreResult:
        """Replace path with payload (temp file + rename in the same directory)."""
        try:
            text = json.dumps(payload, indent=2)
        except (TypeError, ValueError) as e:
            return StoreResult.failure(StoreErrorKind.IO_ERROR, f"Not JSON serializable: {e}")

        result = self.ensure_directory()
        if not result.ok:
            return result

        try:
            fd, temp_path = tempfile.mkstemp(
                dir=os.path.dirname(path) or ".",
                prefix=".tmp_state_",
                suffix=".json",
                text=True,
            )
        except OSError as e:
            return StoreResult.from_os_error(e)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.write("\n")
            os.replace(temp_path, path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            return StoreResult.from_os_error(e)
        return StoreResult.success()

    def delete(self, path: str) -> StoreResult:
        """Remove path. A missing file is reported as NOT_FOUND."""
        try:
            os.remove(path)
        except OSError as e:
            return StoreResult.from_os_error(e)
        return StoreResult.success()

    # ─── Session ──────────────────────────────────────────────────────────

    def load_session(self) -> Optional[Dict[str, Any]]:
        data = self.read_json(self.session_path)
        return data if isinstance(data, dict) else None

    def write_session(self, session: Dict[str, Any]) -> StoreResult:
        return self.write_json(self.session_path, session)

    def delete_session(self) -> StoreResult:
        return self.delete(self.session_path)

    # ─── Profile Draft ────────────────────────────────────────────────────

    def load_profile(self) -> Optional[ProfileDraft]:
        return ProfileDraft.from_dict(self.read_json(self.profile_path))

    def save_profile(self, profile: ProfileDraft) -> StoreResult:
        return self.write_json(self.profile_path, profile.to_dict())

    def delete_profile(self) -> StoreResult:
        return self.delete(self.profile_path)

    # ─── Current Project ──────────────────────────────────────────────────

    def load_project(self) -> Optional[CurrentProject]:
        """
        The current-project pointer, or None if there is none.
        Raises CorruptedStateError when the file parses but its id is unusable.
        """
        data = self.read_json(self.project_path)
        if data is None:
            return None
        return CurrentProject.from_dict(data)

    def save_project(self, project: CurrentProject) -> StoreResult:
        return self.write_json(self.project_path, project.to_dict())
