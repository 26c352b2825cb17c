"""Hierarchical document store contract and the in-process backend.

Paths are slash-separated: collections have an odd number of segments
(``users/u1/dailyLogs``), documents an even number (``users/u1/dailyLogs/abc``).
Values written may contain the sentinels below; each backend resolves them
the way the hosted store does.
"""

from __future__ import annotations

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from internly.errors import NotFoundError
from internly.fileio import read_json, write_json_atomic

if TYPE_CHECKING:
    from internly.workspace import Settings

logger = logging.getLogger(__name__)

MAX_BATCH_OPERATIONS = 500

QUERY_OPS = {"==", "array_contains"}


# ── Sentinels ─────────────────────────────────────────────────


class _Sentinel:
    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


SERVER_TIMESTAMP: Any = _Sentinel("SERVER_TIMESTAMP")
DELETE_FIELD: Any = _Sentinel("DELETE_FIELD")


@dataclass(frozen=True)
class Increment:
    amount: int | float = 1


class ArrayRemove:
    def __init__(self, *values: Any):
        self.values = list(values)

    def __repr__(self) -> str:
        return f"ArrayRemove({', '.join(map(repr, self.values))})"


# ── Paths ─────────────────────────────────────────────────────


def doc_path(*segments: str) -> str:
    """Join path segments, rejecting empty ones."""
    parts = [str(s).strip("/") for s in segments]
    if any(not p for p in parts):
        raise ValueError(f"Empty path segment in {segments!r}")
    return "/".join(parts)


def _split(path: str) -> list[str]:
    parts = path.strip("/").split("/")
    if any(not p for p in parts):
        raise ValueError(f"Malformed path: {path!r}")
    return parts


def check_document_path(path: str) -> str:
    if len(_split(path)) % 2:
        raise ValueError(f"Not a document path: {path!r}")
    return path.strip("/")


def check_collection_path(path: str) -> str:
    if not len(_split(path)) % 2:
        raise ValueError(f"Not a collection path: {path!r}")
    return path.strip("/")


def new_id() -> str:
    return uuid.uuid4().hex[:20]


# ── Contract ──────────────────────────────────────────────────


@dataclass
class Snapshot:
    """A document read from a collection query."""

    id: str
    path: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class _BatchOp:
    kind: str  # set, update, delete
    path: str
    data: dict[str, Any] = field(default_factory=dict)
    merge: bool = False


class WriteBatch:
    """Accumulates writes and commits them together.

    Raises ValueError when more than MAX_BATCH_OPERATIONS are queued.
    """

    def __init__(self, store: DocumentStore):
        self._store = store
        self._ops: list[_BatchOp] = []

    def __len__(self) -> int:
        return len(self._ops)

    def _push(self, op: _BatchOp) -> WriteBatch:
        if len(self._ops) >= MAX_BATCH_OPERATIONS:
            raise ValueError(f"A batch holds at most {MAX_BATCH_OPERATIONS} operations")
        self._ops.append(op)
        return self

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> WriteBatch:
        return self._push(_BatchOp("set", check_document_path(path), dict(data), merge))

    def update(self, path: str, fields: dict[str, Any]) -> WriteBatch:
        return self._push(_BatchOp("update", check_document_path(path), dict(fields)))

    def delete(self, path: str) -> WriteBatch:
        return self._push(_BatchOp("delete", check_document_path(path)))

    def commit(self) -> int:
        """Apply every queued write. Returns the number of operations."""
        if not self._ops:
            return 0
        ops, self._ops = self._ops, []
        self._store._commit(ops)
        return len(ops)


class DocumentStore(ABC):
    """Minimal hosted-document-store surface used by the core."""

    @abstractmethod
    def get(self, path: str) -> dict[str, Any] | None:
        """Document fields, or None when the document does not exist."""

    @abstractmethod
    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    def update(self, path: str, fields: dict[str, Any]) -> None:
        """Merge dotted field paths into an existing document.

        Raises NotFoundError when the document is missing.
        """

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""

    @abstractmethod
    def query(
        self,
        collection: str,
        where: list[tuple[str, str, Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Snapshot]:
        ...

    @abstractmethod
    def _commit(self, ops: list[_BatchOp]) -> None:
        ...

    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a fresh id; returns the id."""
        doc_id = new_id()
        self.set(doc_path(check_collection_path(collection), doc_id), data)
        return doc_id

    def exists(self, path: str) -> bool:
        return self.get(path) is not None

    def batch(self) -> WriteBatch:
        return WriteBatch(self)


# ── Sentinel resolution ───────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _resolve(current: Any, value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return _now_iso()
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.amount
    if isinstance(value, ArrayRemove):
        existing = current if isinstance(current, list) else []
        return [v for v in existing if v not in value.values]
    if isinstance(value, dict):
        return {k: _resolve(None, v) for k, v in value.items() if v is not DELETE_FIELD}
    if isinstance(value, list):
        return [_resolve(None, v) for v in value]
    return value


def _merge_into(target: dict[str, Any], data: dict[str, Any]) -> None:
    for key, value in data.items():
        if value is DELETE_FIELD:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_into(target[key], value)
        else:
            target[key] = _resolve(target.get(key), value)


def _update_into(target: dict[str, Any], fields: dict[str, Any]) -> None:
    for dotted, value in fields.items():
        *parents, leaf = dotted.split(".")
        node = target
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        if value is DELETE_FIELD:
            node.pop(leaf, None)
        else:
            node[leaf] = _resolve(node.get(leaf), value)


def _field(data: dict[str, Any], dotted: str) -> tuple[bool, Any]:
    node: Any = data
    for part in dotted.split("."):
        if not isinstance(node, dict) or part not in node:
            return False, None
        node = node[part]
    return True, node


def _matches(data: dict[str, Any], where: list[tuple[str, str, Any]]) -> bool:
    for name, op, expected in where:
        if op not in QUERY_OPS:
            raise ValueError(f"Unsupported query operator: {op!r}")
        present, value = _field(data, name)
        if not present:
            return False
        if op == "==" and value != expected:
            return False
        if op == "array_contains" and (not isinstance(value, list) or expected not in value):
            return False
    return True


# ── In-process backend ────────────────────────────────────────


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store, optionally persisted to a JSON file after every write."""

    def __init__(self, path: Path | None = None):
        self.path = path
        self._docs: dict[str, dict[str, Any]] = {}
        if path is not None:
            stored = read_json(path).get("documents", {})
            if isinstance(stored, dict):
                self._docs = {k: v for k, v in stored.items() if isinstance(v, dict)}

    def _persist(self) -> None:
        if self.path is not None:
            write_json_atomic(self.path, {"documents": self._docs})

    # Single-document operations apply without persisting so that
    # batches can reuse them and persist once.

    def _apply_set(self, path: str, data: dict[str, Any], merge: bool) -> None:
        if merge and path in self._docs:
            _merge_into(self._docs[path], data)
        else:
            doc: dict[str, Any] = {}
            _merge_into(doc, data)
            self._docs[path] = doc

    def _apply_update(self, path: str, fields: dict[str, Any]) -> None:
        if path not in self._docs:
            raise NotFoundError(f"No document to update: {path}")
        _update_into(self._docs[path], fields)

    def get(self, path: str) -> dict[str, Any] | None:
        doc = self._docs.get(check_document_path(path))
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._apply_set(check_document_path(path), data, merge)
        self._persist()

    def update(self, path: str, fields: dict[str, Any]) -> None:
        self._apply_update(check_document_path(path), fields)
        self._persist()

    def delete(self, path: str) -> None:
        if self._docs.pop(check_document_path(path), None) is not None:
            self._persist()

    def query(
        self,
        collection: str,
        where: list[tuple[str, str, Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Snapshot]:
        prefix = check_collection_path(collection) + "/"
        results = []
        for path, data in self._docs.items():
            if not path.startswith(prefix) or "/" in path[len(prefix):]:
                continue
            if where and not _matches(data, where):
                continue
            results.append(Snapshot(id=path[len(prefix):], path=path, data=copy.deepcopy(data)))

        if order_by:
            # Documents missing the ordering field are excluded.
            results = [snap for snap in results if _field(snap.data, order_by)[0]]
            results.sort(key=lambda snap: _field(snap.data, order_by)[1], reverse=descending)
        if limit is not None:
            results = results[:limit]
        return results

    def _commit(self, ops: list[_BatchOp]) -> None:
        # Validate before applying so a failed update leaves nothing half-written.
        existing = set(self._docs)
        for op in ops:
            if op.kind == "set":
                existing.add(op.path)
            elif op.kind == "delete":
                existing.discard(op.path)
            elif op.path not in existing:
                raise NotFoundError(f"No document to update: {op.path}")
        for op in ops:
            if op.kind == "set":
                self._apply_set(op.path, op.data, op.merge)
            elif op.kind == "update":
                self._apply_update(op.path, op.data)
            else:
                self._docs.pop(op.path, None)
        self._persist()

    def paths(self) -> list[str]:
        """Every stored document path, sorted."""
        return sorted(self._docs)


def open_document_store(settings: Settings, root: Path | None = None) -> DocumentStore:
    """Build the document store named by settings.store_backend."""
    from internly.workspace import store_path

    if settings.store_backend == "memory":
        return MemoryDocumentStore()
    if settings.store_backend == "json":
        return MemoryDocumentStore(store_path(root))
    if settings.store_backend == "firestore":
        from internly.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore.from_settings(settings)
    raise ValueError(f"Unknown store_backend: {settings.store_backend!r}")
