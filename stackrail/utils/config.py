"""
StackRail - Configuration
Loads settings from environment variables / .env file.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

SESSION_FILE_NAME = ".session.json"
PROFILE_FILE_NAME = ".profile.json"
PROJECT_FILE_NAME = ".project.json"


def default_state_dir() -> str:
    """Per-user configuration directory (~/.stackrail)."""
    return os.path.join(os.path.expanduser("~"), ".stackrail")


@dataclass
class StackRailConfig:
    """All configuration for a single StackRail CLI invocation."""
    # Backend
    supabase_url: str = ""
    supabase_anon_key: str = ""
    # Local state
    state_dir: str = field(default_factory=default_state_dir)
    # Debug
    debug_mode: bool = False

    @classmethod
    def from_env(cls, env_path: str = ".env") -> "StackRailConfig":
        """Load configuration from environment variables."""
        env_file = Path(env_path)
        if env_file.is_file():
            _load_dotenv(env_file)
        return cls(
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
            state_dir=os.getenv("STACKRAIL_HOME") or default_state_dir(),
            debug_mode=os.getenv("STACKRAIL_DEBUG", "false").lower() == "true",
        )

    def validate(self) -> List[str]:
        """Return list of problems that prevent reaching the backend. Empty if fully configured."""
        problems = []
        if not self.supabase_url:
            problems.append("SUPABASE_URL not set")
        if not self.supabase_anon_key:
            problems.append("SUPABASE_ANON_KEY not set")
        return problems

    @property
    def session_path(self) -> str:
        return os.path.join(self.state_dir, SESSION_FILE_NAME)

    @property
    def profile_path(self) -> str:
        return os.path.join(self.state_dir, PROFILE_FILE_NAME)

    @property
    def project_path(self) -> str:
        return os.path.join(self.state_dir, PROJECT_FILE_NAME)


def _load_dotenv(path: Path):
    """Minimal .env loader. Values already present in the environment win."""
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, _, value = line.partition("=")
                key = key.strip()
                if key.startswith("export "):
                    key = key[len("export "):].strip()
                value = value.strip().strip("'\"")
                if key and not os.environ.get(key):
                    os.environ[key] = value
    except OSError:
        pass
