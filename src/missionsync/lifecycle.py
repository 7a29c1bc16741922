"""Singleton shutdown/reset registry.

Created: 2026-02-14

Factories such as ``get_sync_engine()`` register their cleanup callbacks
here. The server's shutdown hook calls ``shutdown_all()``; tests call
``reset_all()`` so the next ``get_*()`` builds a fresh instance.

Shutdown runs in reverse registration order: something registered later
may depend on what came before it.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    shutdown: Callable[[], Any] | None = None
    reset: Callable[[], Any] | None = None


_registry: dict[str, _Entry] = {}


def register(
    name: str,
    *,
    shutdown: Callable[[], Any] | None = None,
    reset: Callable[[], Any] | None = None,
) -> None:
    """Register (or replace) callbacks for a named singleton."""
    _registry.pop(name, None)
    _registry[name] = _Entry(shutdown=shutdown, reset=reset)


def unregister(name: str) -> bool:
    return _registry.pop(name, None) is not None


def registered() -> list[str]:
    return list(_registry)


async def shutdown_all() -> None:
    """Run every shutdown callback, newest first, awaiting coroutines.

    A failing callback is logged and the rest still run.
    """
    for name in reversed(list(_registry)):
        entry = _registry.get(name)
        if entry is None or entry.shutdown is None:
            continue
        try:
            result = entry.shutdown()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("Error shutting down %s", name, exc_info=True)
        else:
            logger.debug("Shut down %s", name)


def reset_all() -> None:
    """Run every reset callback and empty the registry."""
    entries = list(_registry.items())
    _registry.clear()
    for name, entry in entries:
        if entry.reset is None:
            continue
        try:
            entry.reset()
        except Exception:
            logger.warning("Error resetting %s", name, exc_info=True)
