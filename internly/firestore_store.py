"""Firestore backend for the document store contract."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from google.api_core import exceptions as api_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from internly.docstore import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    DocumentStore,
    Increment,
    Snapshot,
    _BatchOp,
    check_collection_path,
    check_document_path,
)
from internly.errors import NotFoundError, TransientRemoteError
from internly.workspace import Settings

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(action: str, path: str) -> Iterator[None]:
    try:
        yield
    except api_exceptions.NotFound as e:
        raise NotFoundError(f"{action} {path}: {e.message}") from e
    except api_exceptions.GoogleAPICallError as e:
        logger.error("Firestore %s failed for %s: %s", action, path, e)
        raise TransientRemoteError(f"{action} {path}: {e.message}") from e
    except api_exceptions.RetryError as e:
        logger.error("Firestore %s gave up retrying for %s: %s", action, path, e)
        raise TransientRemoteError(f"{action} {path}: {e}") from e


def _to_firestore(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if value is DELETE_FIELD:
        return firestore.DELETE_FIELD
    if isinstance(value, Increment):
        return firestore.Increment(value.amount)
    if isinstance(value, ArrayRemove):
        return firestore.ArrayRemove(value.values)
    if isinstance(value, dict):
        return {k: _to_firestore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_firestore(v) for v in value]
    return value


def _from_firestore(value: Any) -> Any:
    """Server timestamps come back as datetimes; the core works with ISO strings."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _from_firestore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_firestore(v) for v in value]
    return value


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, client: firestore.Client):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> FirestoreDocumentStore:
        project = settings.firestore_project or None
        if settings.firestore_credentials:
            client = firestore.Client.from_service_account_json(settings.firestore_credentials, project=project)
        else:
            client = firestore.Client(project=project)
        return cls(client)

    def get(self, path: str) -> dict[str, Any] | None:
        path = check_document_path(path)
        with _translate_errors("get", path):
            snap = self.client.document(path).get()
        if not snap.exists:
            return None
        return _from_firestore(snap.to_dict() or {})

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        path = check_document_path(path)
        with _translate_errors("set", path):
            self.client.document(path).set(_to_firestore(data), merge=merge)

    def update(self, path: str, fields: dict[str, Any]) -> None:
        path = check_document_path(path)
        with _translate_errors("update", path):
            self.client.document(path).update(_to_firestore(fields))

    def delete(self, path: str) -> None:
        path = check_document_path(path)
        with _translate_errors("delete", path):
            self.client.document(path).delete()

    def query(
        self,
        collection: str,
        where: list[tuple[str, str, Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Snapshot]:
        collection = check_collection_path(collection)
        q: Any = self.client.collection(collection)
        for name, op, value in where or []:
            q = q.where(filter=FieldFilter(name, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            q = q.order_by(order_by, direction=direction)
        if limit is not None:
            q = q.limit(limit)
        with _translate_errors("query", collection):
            return [
                Snapshot(id=snap.id, path=snap.reference.path, data=_from_firestore(snap.to_dict() or {}))
                for snap in q.stream()
            ]

    def _commit(self, ops: list[_BatchOp]) -> None:
        batch = self.client.batch()
        for op in ops:
            ref = self.client.document(op.path)
            if op.kind == "set":
                batch.set(ref, _to_firestore(op.data), merge=op.merge)
            elif op.kind == "update":
                batch.update(ref, _to_firestore(op.data))
            else:
                batch.delete(ref)
        with _translate_errors("batch commit", f"{len(ops)} ops"):
            batch.commit()
