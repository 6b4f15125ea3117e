"""
Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because the web client
already reads and writes it directly. This adapter gives the Python services
the same collections through the DocumentStoreInterface.

TRADEOFFS:
- Queries need composite indexes for range filters combined with equality
  filters (see the prefix search on users)
- Version checks and batches run as Firestore transactions, so they are
  retried by the client library on contention

Shared accounts carry a denormalised memberIds array so that "accounts
this user belongs to" is an indexed array_contains query instead of a scan.
"""

from typing import Any, Optional
from uuid import uuid4

import firebase_admin
import structlog
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.config import get_settings
from fintrack.services.storage.interface import (
    FILTER_OPERATORS,
    VERSION_FIELD,
    BatchAction,
    BatchOperation,
    ConflictError,
    ConnectionError,
    DocumentStoreInterface,
    DuplicateError,
    Filter,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Retry transient failures; outcomes that are answers (missing, taken,
# stale version) are not retried
retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError, ConflictError)),
    reraise=True,
)


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles app initialisation and provides retry logic for connecting.
    """

    def __init__(self):
        self._db = None
        self._settings = get_settings().firestore

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self):
        """
        Establish the Firestore client.

        Uses service account credentials; the default firebase app is
        initialised once per process.
        """
        if self._db is None:
            try:
                try:
                    app = firebase_admin.get_app()
                except ValueError:
                    cred = credentials.Certificate(self._settings.credentials_path)
                    options = {}
                    if self._settings.project_id:
                        options["projectId"] = self._settings.project_id
                    app = firebase_admin.initialize_app(cred, options or None)
                self._db = firestore.client(app)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Firestore: {e}")

        return self._db


class FirestoreDocumentStore(DocumentStoreInterface):
    """Firestore implementation of the document store."""

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    @property
    def _db(self):
        return self._client.connect()

    def _ref(self, collection: str, document_id: str):
        return self._db.collection(collection).document(document_id)

    @retry_transient
    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        """Create a document; create() fails if the id is taken."""
        fields = {k: v for k, v in data.items() if k != "id"}
        ref = self._ref(collection, document_id or uuid4().hex)
        try:
            ref.create(fields)
            return ref.id
        except google_exceptions.Conflict:
            raise DuplicateError(f"{collection}/{ref.id} already exists")
        except Exception as e:
            raise StorageError(f"Failed to create document: {e}")

    @retry_transient
    async def get_document(
        self,
        collection: str,
        document_id: str,
    ) -> Optional[dict[str, Any]]:
        try:
            snapshot = self._ref(collection, document_id).get()
        except Exception as e:
            raise StorageError(f"Failed to get document: {e}")
        if not snapshot.exists:
            return None
        return {**snapshot.to_dict(), "id": snapshot.id}

    @retry_transient
    async def list_documents(
        self,
        collection: str,
        filters: Optional[list[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        query = self._db.collection(collection)
        for field, op, value in filters or []:
            if op not in FILTER_OPERATORS:
                raise StorageError(f"Unsupported filter operator: {op}")
            query = query.where(filter=firestore.FieldFilter(field, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        try:
            return [{**doc.to_dict(), "id": doc.id} for doc in query.stream()]
        except Exception as e:
            raise StorageError(f"Failed to list documents: {e}")

    async def update_document(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        ref = self._ref(collection, document_id)

        @firestore.transactional
        def apply(transaction) -> int:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError(f"{collection}/{document_id} not found")
            new_version = self._check_version(
                collection, document_id, snapshot.to_dict(), expected_version
            )
            update = dict(fields)
            if new_version:
                update[VERSION_FIELD] = new_version
            transaction.update(ref, update)
            return new_version

        try:
            return apply(self._db.transaction())
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update document: {e}")

    async def delete_document(self, collection: str, document_id: str) -> bool:
        ref = self._ref(collection, document_id)
        try:
            if not ref.get().exists:
                return False
            ref.delete()
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete document: {e}")

    async def commit_batch(self, operations: list[BatchOperation]) -> None:
        """
        Run the batch as one transaction.

        Update targets are read first (Firestore requires every read before
        the first write) so missing documents and stale versions abort the
        whole batch before anything is written.
        """

        @firestore.transactional
        def apply(transaction) -> None:
            versions: dict[int, int] = {}
            for index, operation in enumerate(operations):
                if operation.action != BatchAction.UPDATE:
                    continue
                ref = self._ref(operation.collection, operation.document_id)
                snapshot = ref.get(transaction=transaction)
                if not snapshot.exists:
                    raise NotFoundError(
                        f"{operation.collection}/{operation.document_id} not found"
                    )
                versions[index] = self._check_version(
                    operation.collection,
                    operation.document_id,
                    snapshot.to_dict(),
                    operation.expected_version,
                )

            for index, operation in enumerate(operations):
                ref = self._ref(operation.collection, operation.document_id)
                if operation.action == BatchAction.SET:
                    transaction.set(ref, {k: v for k, v in operation.data.items() if k != "id"})
                elif operation.action == BatchAction.UPDATE:
                    update = dict(operation.data)
                    if versions[index]:
                        update[VERSION_FIELD] = versions[index]
                    transaction.update(ref, update)
                elif operation.action == BatchAction.DELETE:
                    transaction.delete(ref)

        try:
            apply(self._db.transaction())
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to commit batch: {e}")
        logger.debug("batch_committed", operations=len(operations))

    @staticmethod
    def _check_version(
        collection: str,
        document_id: str,
        document: dict,
        expected_version: Optional[int],
    ) -> int:
        """Return the version to write (0 when the document is unversioned)."""
        current = document.get(VERSION_FIELD)
        if expected_version is not None and current != expected_version:
            raise ConflictError(collection, document_id, expected_version, current)
        return 0 if current is None else current + 1
