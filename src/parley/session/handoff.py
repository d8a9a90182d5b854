"""Agent handoff detection and the roster of known agents."""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

HANDOFF_PATTERN = re.compile(r"^transfer_to_(.+)$")

# (old_active, new_active)
AgentChangeCallback = Callable[[str, str], None]


def parse_handoff_target(tool_name: str) -> str | None:
    """
    Extract the target agent from a handoff tool name.

    ``transfer_to_billing`` -> ``billing``. Any other name -> None.
    """
    match = HANDOFF_PATTERN.match(tool_name or "")
    if match is None:
        return None
    return match.group(1)


class AgentRoster:
    """
    Known agent names and the currently active one.

    Handoffs are mirrored here after the remote session has already
    performed them; nothing is sent back to the server.
    """

    def __init__(self, names: Iterable[str], active: str | None = None):
        self._names = list(dict.fromkeys(names))
        if not self._names:
            raise ValueError("AgentRoster needs at least one agent name")

        if active is None:
            self._active = self._names[0]
        else:
            resolved = self.resolve(active)
            if resolved is None:
                raise ValueError(f"Unknown agent: {active}")
            self._active = resolved

        self._listeners: list[AgentChangeCallback] = []

    @property
    def active(self) -> str:
        return self._active

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def on_change(self, callback: AgentChangeCallback) -> None:
        self._listeners.append(callback)

    def resolve(self, candidate: str) -> str | None:
        """Case-insensitive lookup of an agent name."""
        wanted = candidate.lower()
        for name in self._names:
            if name.lower() == wanted:
                return name
        return None

    def select(self, name: str) -> None:
        """
        Make ``name`` the active agent.

        Raises:
            KeyError: If the name is not in the roster.
        """
        resolved = self.resolve(name)
        if resolved is None:
            raise KeyError(f"Unknown agent: {name}")
        self._set_active(resolved)

    def apply_handoff(self, tool_name: str) -> str | None:
        """
        Follow a ``transfer_to_<agent>`` tool call.

        Returns:
            The new active agent, or None if nothing changed.
        """
        target = parse_handoff_target(tool_name)
        if target is None:
            return None

        resolved = self.resolve(target)
        if resolved is None:
            logger.info(f"Handoff to unknown agent '{target}' ignored")
            return None
        if resolved == self._active:
            return None

        logger.info(f"Handoff: {self._active} -> {resolved}")
        self._set_active(resolved)
        return resolved

    def _set_active(self, name: str) -> None:
        old = self._active
        if old == name:
            return
        self._active = name
        for listener in self._listeners:
            try:
                listener(old, name)
            except Exception:
                logger.exception("Agent change listener failed")
