"""Transcript store: the ordered, append-only log of a conversation."""

from __future__ import annotations

import dataclasses
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Role(Enum):
    """Speaker of a message item."""

    USER = "user"
    ASSISTANT = "assistant"

    def __str__(self) -> str:
        return self.value


class ItemKind(Enum):
    MESSAGE = auto()
    BREADCRUMB = auto()


class ItemStatus(Enum):
    IN_PROGRESS = auto()
    DONE = auto()

    def __str__(self) -> str:
        return self.name


class GuardrailStatus(Enum):
    PENDING = auto()
    IN_PROGRESS = auto()
    DONE = auto()

    def __str__(self) -> str:
        return self.name


PASS_CATEGORY = "NONE"


@dataclass(frozen=True)
class GuardrailVerdict:
    """
    Output guardrail verdict for an assistant message.

    A verdict that is DONE with a category other than NONE is a trip and
    is final for the item.
    """

    status: GuardrailStatus
    category: str = ""
    rationale: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status == GuardrailStatus.DONE

    @property
    def is_trip(self) -> bool:
        return self.is_terminal and self.category not in ("", PASS_CATEGORY)


IN_PROGRESS_VERDICT = GuardrailVerdict(GuardrailStatus.IN_PROGRESS)
PASS_VERDICT = GuardrailVerdict(GuardrailStatus.DONE, PASS_CATEGORY, "")


@dataclass
class TranscriptItem:
    """One transcript entry: a message or a breadcrumb."""

    item_id: str
    kind: ItemKind
    role: Role | None = None
    text: str = ""
    status: ItemStatus = ItemStatus.IN_PROGRESS
    guardrail: GuardrailVerdict | None = None
    title: str = ""
    data: Any = None
    created_at: float = field(default_factory=time.time)

    @property
    def is_message(self) -> bool:
        return self.kind == ItemKind.MESSAGE

    def copy(self) -> "TranscriptItem":
        return dataclasses.replace(self)


class DuplicateItemError(Exception):
    """Raised when an item id is added twice."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Transcript already has an item with id {item_id!r}")


# Called with the id of the changed item, or None when the store is cleared
ChangeCallback = Callable[[str | None], None]

_UPDATABLE_FIELDS = frozenset(
    {"role", "text", "status", "guardrail", "title", "data"}
)


class TranscriptStore:
    """
    Insertion-ordered collection of transcript items keyed by item id.

    The store only inserts and patches; it knows nothing about events.
    Items are never removed except by clear(). Reads return copies.
    """

    def __init__(self) -> None:
        self._items: dict[str, TranscriptItem] = {}
        self._listeners: list[ChangeCallback] = []

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def on_change(self, callback: ChangeCallback) -> None:
        """Register a callback invoked after every mutation."""
        self._listeners.append(callback)

    def _notify(self, item_id: str | None) -> None:
        for listener in self._listeners:
            try:
                listener(item_id)
            except Exception:
                logger.exception("Transcript change listener failed")

    def _insert(self, item: TranscriptItem) -> TranscriptItem:
        if item.item_id in self._items:
            raise DuplicateItemError(item.item_id)
        self._items[item.item_id] = item
        self._notify(item.item_id)
        return item.copy()

    def _require(self, item_id: str) -> TranscriptItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise KeyError(f"No transcript item with id {item_id!r}") from None

    def add_message(
        self,
        item_id: str,
        role: Role,
        text: str = "",
        status: ItemStatus = ItemStatus.IN_PROGRESS,
        guardrail: GuardrailVerdict | None = None,
    ) -> TranscriptItem:
        """Insert a message item at the end of the transcript."""
        return self._insert(
            TranscriptItem(
                item_id=item_id,
                kind=ItemKind.MESSAGE,
                role=role,
                text=text,
                status=status,
                guardrail=guardrail,
            )
        )

    def add_breadcrumb(
        self,
        title: str,
        data: Any = None,
        item_id: str | None = None,
    ) -> TranscriptItem:
        """Insert a breadcrumb; a fresh id is generated when none is given."""
        return self._insert(
            TranscriptItem(
                item_id=item_id or uuid.uuid4().hex[:32],
                kind=ItemKind.BREADCRUMB,
                status=ItemStatus.DONE,
                title=title,
                data=data,
            )
        )

    def append_text(self, item_id: str, text: str) -> None:
        item = self._require(item_id)
        if not text:
            return
        item.text += text
        self._notify(item_id)

    def replace_text(self, item_id: str, text: str) -> bool:
        """Replace an item's text. Returns False if it was already equal."""
        item = self._require(item_id)
        if item.text == text:
            return False
        item.text = text
        self._notify(item_id)
        return True

    def update(self, item_id: str, **fields: Any) -> bool:
        """
        Patch fields of an item.

        Returns:
            True if any field actually changed.

        Raises:
            KeyError: Unknown item id.
            ValueError: A field that cannot be patched.
        """
        item = self._require(item_id)
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update transcript fields: {sorted(unknown)}")

        changed = False
        for name, value in fields.items():
            if getattr(item, name) != value:
                setattr(item, name, value)
                changed = True
        if changed:
            self._notify(item_id)
        return changed

    def get(self, item_id: str) -> TranscriptItem | None:
        item = self._items.get(item_id)
        return item.copy() if item is not None else None

    def last_message(self, role: Role) -> TranscriptItem | None:
        """Most recently inserted message with the given role."""
        for item in reversed(self._items.values()):
            if item.is_message and item.role == role:
                return item.copy()
        return None

    def snapshot(self) -> list[TranscriptItem]:
        """Copies of all items in insertion order."""
        return [item.copy() for item in self._items.values()]

    def clear(self) -> None:
        self._items.clear()
        self._notify(None)
