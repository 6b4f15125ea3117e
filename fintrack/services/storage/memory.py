"""
In-Memory Document Store

Backs the test suite and local development. Implements the same contract
as the Firestore adapter, including version checks and all-or-nothing
batches, so service code behaves identically on both.

Documents are deep-copied on the way in and out; callers can never mutate
stored state by holding on to a returned dict.
"""

import copy
from typing import Any, Optional
from uuid import uuid4

import structlog

from fintrack.services.storage.interface import (
    FILTER_OPERATORS,
    VERSION_FIELD,
    BatchAction,
    BatchOperation,
    ConflictError,
    DocumentStoreInterface,
    DuplicateError,
    Filter,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


def _matches(document: dict, filters: list[Filter]) -> bool:
    for field, op, value in filters:
        if field not in document:
            return False
        actual = document[field]
        if op == "==":
            ok = actual == value
        elif op == "array_contains":
            ok = isinstance(actual, list) and value in actual
        elif actual is None:
            ok = False
        elif op == ">=":
            ok = actual >= value
        elif op == "<":
            ok = actual < value
        elif op == "<=":
            ok = actual <= value
        else:
            raise StorageError(f"Unsupported filter operator: {op}")
        if not ok:
            return False
    return True


def _apply_update(
    collection: str,
    document_id: str,
    document: Optional[dict],
    fields: dict,
    expected_version: Optional[int],
) -> int:
    """Update document in place and return its new version."""
    if document is None:
        raise NotFoundError(f"{collection}/{document_id} not found")

    current = document.get(VERSION_FIELD)
    if expected_version is not None and current != expected_version:
        raise ConflictError(collection, document_id, expected_version, current)

    document.update(copy.deepcopy(fields))
    if current is None:
        return 0
    document[VERSION_FIELD] = current + 1
    return current + 1


class InMemoryDocumentStore(DocumentStoreInterface):
    """Dict-of-dicts document store."""

    def __init__(self, initial: Optional[dict[str, dict[str, dict]]] = None):
        self._collections: dict[str, dict[str, dict]] = copy.deepcopy(initial or {})

    def _collection(self, name: str) -> dict[str, dict]:
        return self._collections.setdefault(name, {})

    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        docs = self._collection(collection)
        document_id = document_id or uuid4().hex
        if document_id in docs:
            raise DuplicateError(f"{collection}/{document_id} already exists")
        stored = copy.deepcopy(data)
        stored.pop("id", None)
        docs[document_id] = stored
        return document_id

    async def get_document(
        self,
        collection: str,
        document_id: str,
    ) -> Optional[dict[str, Any]]:
        document = self._collection(collection).get(document_id)
        if document is None:
            return None
        return {**copy.deepcopy(document), "id": document_id}

    async def list_documents(
        self,
        collection: str,
        filters: Optional[list[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        for _, op, _ in filters or []:
            if op not in FILTER_OPERATORS:
                raise StorageError(f"Unsupported filter operator: {op}")

        results = [
            {**copy.deepcopy(document), "id": document_id}
            for document_id, document in self._collection(collection).items()
            if _matches(document, filters or [])
        ]

        if order_by:
            # Documents without the field are left out, as Firestore does
            results = [d for d in results if d.get(order_by) is not None]
            results.sort(key=lambda d: d[order_by], reverse=descending)

        if limit is not None:
            results = results[:limit]
        return results

    async def update_document(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        document = self._collection(collection).get(document_id)
        return _apply_update(collection, document_id, document, fields, expected_version)

    async def delete_document(self, collection: str, document_id: str) -> bool:
        return self._collection(collection).pop(document_id, None) is not None

    async def commit_batch(self, operations: list[BatchOperation]) -> None:
        # Apply to a copy and swap it in only when every operation succeeded
        staged = copy.deepcopy(self._collections)

        for operation in operations:
            docs = staged.setdefault(operation.collection, {})
            if operation.action == BatchAction.SET:
                stored = copy.deepcopy(operation.data)
                stored.pop("id", None)
                docs[operation.document_id] = stored
            elif operation.action == BatchAction.UPDATE:
                _apply_update(
                    operation.collection,
                    operation.document_id,
                    docs.get(operation.document_id),
                    operation.data,
                    operation.expected_version,
                )
            elif operation.action == BatchAction.DELETE:
                docs.pop(operation.document_id, None)

        self._collections = staged
        logger.debug("batch_committed", operations=len(operations))
