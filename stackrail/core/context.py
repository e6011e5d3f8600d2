"""
StackRail - Application Context

Everything a command handler needs, built once per invocation and
passed down explicitly: configuration, console, local store, backend
client, session manager and remote store.
"""
from dataclasses import dataclass
from typing import Any, Optional

from rich.console import Console

from ..storage.local_store import LocalStateStore
from ..storage.remote import RemoteStore
from ..utils.config import StackRailConfig
from ..utils.logging import make_console
from .session_manager import SessionManager


@dataclass
class AppContext:
    config: StackRailConfig
    console: Console
    store: LocalStateStore
    client: Any
    sessions: SessionManager
    remote: RemoteStore

    @property
    def debug(self) -> bool:
        return self.config.debug_mode


def build_context(config: StackRailConfig, client: Any, console: Optional[Console] = None) -> AppContext:
    console = console or make_console()
    store = LocalStateStore(config)
    return AppContext(
        config=config,
        console=console,
        store=store,
        client=client,
        sessions=SessionManager(client, store, console, debug=config.debug_mode),
        remote=RemoteStore(client),
    )
