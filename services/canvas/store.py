from __future__ import annotations

import copy
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable
from uuid import uuid4

logger = logging.getLogger("livecanvas.store")

SESSION_ID_SAFE_RE = re.compile(r"[^a-zA-Z0-9._:-]+")


@dataclass(frozen=True)
class SceneSnapshot:
    elements: tuple[dict[str, Any], ...]
    selected_id: str | None
    revision: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "elements": copy.deepcopy(list(self.elements)),
            "selected_id": self.selected_id,
            "revision": self.revision,
        }


Subscriber = Callable[[SceneSnapshot], None]


class CanvasStore:
    """Ordered in-memory scene plus single-selection state.

    Selection is held only as ``selected_id``; each element's ``selected`` flag
    is derived when a snapshot is taken, so the two views cannot disagree.
    Every mutating call bumps ``revision`` and notifies subscribers.
    """

    def __init__(self) -> None:
        self._elements: list[dict[str, Any]] = []
        self._selected_id: str | None = None
        self._revision = 0
        self._subscribers: list[Subscriber] = []

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def revision(self) -> int:
        return self._revision

    def __len__(self) -> int:
        return len(self._elements)

    def _index(self, element_id: str) -> int:
        for idx, element in enumerate(self._elements):
            if element["id"] == element_id:
                return idx
        return -1

    def contains(self, element_id: str) -> bool:
        return self._index(element_id) >= 0

    def _view(self, element: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(element)
        row["selected"] = self._selected_id is not None and element["id"] == self._selected_id
        return row

    def get(self, element_id: str) -> dict[str, Any] | None:
        idx = self._index(element_id)
        if idx < 0:
            return None
        return self._view(self._elements[idx])

    def elements(self) -> list[dict[str, Any]]:
        return [self._view(element) for element in self._elements]

    def snapshot(self) -> SceneSnapshot:
        return SceneSnapshot(
            elements=tuple(self.elements()),
            selected_id=self._selected_id,
            revision=self._revision,
        )

    def summary(self) -> dict[str, Any]:
        counts: dict[str, int] = {}
        for element in self._elements:
            kind = str(element.get("type", ""))
            counts[kind] = counts.get(kind, 0) + 1
        return {
            "revision": self._revision,
            "element_count": len(self._elements),
            "counts_by_type": counts,
            "selected_id": self._selected_id,
        }

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _commit(self) -> None:
        self._revision += 1
        if not self._subscribers:
            return
        snap = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception:  # noqa: BLE001
                logger.warning("Store: subscriber failed at revision %d", snap.revision, exc_info=True)

    def add(self, element: dict[str, Any]) -> str:
        element_id = str(uuid4())
        row = copy.deepcopy(element)
        row.pop("selected", None)
        row["id"] = element_id
        self._elements.append(row)
        self._commit()
        return element_id

    def update(self, element_id: str, patch: dict[str, Any]) -> None:
        idx = self._index(element_id)
        if idx < 0:
            return
        changes = copy.deepcopy(patch or {})
        changes.pop("id", None)
        changes.pop("selected", None)
        self._elements[idx] = {**self._elements[idx], **changes}
        self._commit()

    def remove(self, element_id: str) -> None:
        idx = self._index(element_id)
        if idx < 0:
            return
        del self._elements[idx]
        if self._selected_id == element_id:
            self._selected_id = None
        self._commit()

    def select_element(self, element_id: str | None) -> None:
        # Unknown ids are accepted: selected_id is set but no element reports selected.
        self._selected_id = element_id
        self._commit()

    def clear_selection(self) -> None:
        self.select_element(None)

    def clear_all(self) -> None:
        self._elements = []
        self._selected_id = None
        self._commit()


def normalize_session_id(session_id: str | None) -> str:
    cleaned = SESSION_ID_SAFE_RE.sub("-", str(session_id or "").strip()).strip("-")
    return cleaned or "default"


class CanvasStoreRegistry:
    def __init__(
        self,
        max_sessions: int = 256,
        on_evict: Callable[[str], None] | None = None,
    ) -> None:
        self.max_sessions = max(1, int(max_sessions))
        self.on_evict = on_evict
        self._stores: OrderedDict[str, CanvasStore] = OrderedDict()

    def get_or_create(self, session_id: str | None) -> CanvasStore:
        key = normalize_session_id(session_id)
        store = self._stores.get(key)
        if store is None:
            store = CanvasStore()
            self._stores[key] = store
            while len(self._stores) > self.max_sessions:
                evicted, _ = self._stores.popitem(last=False)
                logger.info("Store: evicted session '%s' (cap %d)", evicted, self.max_sessions)
                if self.on_evict is not None:
                    self.on_evict(evicted)
        else:
            self._stores.move_to_end(key)
        return store

    def get(self, session_id: str | None) -> CanvasStore | None:
        return self._stores.get(normalize_session_id(session_id))

    def drop(self, session_id: str | None) -> bool:
        return self._stores.pop(normalize_session_id(session_id), None) is not None

    def session_ids(self) -> list[str]:
        return list(self._stores.keys())


__all__ = [
    "CanvasStore",
    "CanvasStoreRegistry",
    "SceneSnapshot",
    "normalize_session_id",
]
