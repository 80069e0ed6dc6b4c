"""
Cosmos DB record store.

Provides the hosted record store on Azure Cosmos DB with:
- Connection management
- Container access
- Retry logic for transient failures

Container partition keys:
- documents: /id
- document_access: /email
- admin_users: /email
"""

import asyncio
import logging
import os
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential

from ..exceptions import (
    AccessLogWriteError,
    AuthenticationError,
    DocumentLookupError,
    ExternalStoreError,
    StorageConnectionError,
    StorageIOError,
)
from ..protocol import AccessRecord, DocumentRef, RecordStore

logger = logging.getLogger(__name__)

# Container names
DOCUMENTS_CONTAINER = "documents"
ACCESS_CONTAINER = "document_access"
ADMIN_USERS_CONTAINER = "admin_users"

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds

# Auth methods
AUTH_KEY = "key"
AUTH_DEFAULT_CREDENTIAL = "default_credential"

# Store failures plus malformed rows that cannot be parsed
_ROW_ERRORS = (StorageIOError, CosmosHttpResponseError, KeyError, ValueError, TypeError)


@dataclass
class CosmosConfig:
    """Configuration for Cosmos DB connection.

    Attributes:
        endpoint: Cosmos DB account endpoint URL
        key: Cosmos DB account key (only needed if auth_method='key')
        database_name: Name of the database to use
        auth_method: Authentication method ('key' or 'default_credential')
        max_retries: Maximum retry attempts for transient failures
        retry_delay: Base delay between retries (seconds)
    """

    endpoint: str
    key: str | None = None
    database_name: str = "document_gate"
    auth_method: str = AUTH_KEY
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    @classmethod
    def from_env(cls, database_name: str = "document_gate") -> "CosmosConfig":
        """Create config from environment variables.

        Expected environment variables:
        - COSMOS_ENDPOINT: Cosmos DB account endpoint
        - COSMOS_AUTH_METHOD: 'key' or 'default_credential'
          (default: 'key' when COSMOS_KEY is set)
        - COSMOS_KEY: Cosmos DB account key (only if auth_method='key')

        Raises:
            AuthenticationError: If required environment variables are missing
        """
        endpoint = os.environ.get("COSMOS_ENDPOINT")
        key = os.environ.get("COSMOS_KEY")
        auth_method = os.environ.get(
            "COSMOS_AUTH_METHOD", AUTH_KEY if key else AUTH_DEFAULT_CREDENTIAL
        )

        if not endpoint:
            raise AuthenticationError("cosmos", "COSMOS_ENDPOINT environment variable not set")
        if auth_method == AUTH_KEY and not key:
            raise AuthenticationError("cosmos", "COSMOS_KEY required when auth_method='key'")

        return cls(endpoint=endpoint, key=key, database_name=database_name, auth_method=auth_method)


class CosmosRecordStore(RecordStore):
    """Record store backed by the Azure Cosmos DB async client."""

    def __init__(self, config: CosmosConfig, clock: Callable[[], datetime] | None = None):
        """Initialize the store.

        Args:
            config: Cosmos DB configuration
            clock: Returns the current UTC time for new document rows
        """
        self.config = config
        self._clock = clock or (lambda: datetime.now(UTC))
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None
        self._database: DatabaseProxy | None = None
        self._containers: dict[str, ContainerProxy] = {}
        self._initialized = False

    @classmethod
    async def create(cls, config: CosmosConfig | None = None) -> "CosmosRecordStore":
        """Create and initialize a store."""
        store = cls(config or CosmosConfig.from_env())
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Connect and ensure the database and containers exist."""
        if self._initialized:
            return

        try:
            if self.config.auth_method == AUTH_KEY and self.config.key:
                client = CosmosClient(self.config.endpoint, credential=self.config.key)
            else:
                # No key: managed identity or developer login
                self._credential = DefaultAzureCredential()
                client = CosmosClient(self.config.endpoint, credential=self._credential)
            self._client = client

            self._database = await client.create_database_if_not_exists(
                id=self.config.database_name
            )

            await self._ensure_container(DOCUMENTS_CONTAINER, "/id")
            await self._ensure_container(ACCESS_CONTAINER, "/email")
            await self._ensure_container(ADMIN_USERS_CONTAINER, "/email")

            self._initialized = True
            logger.info(f"Connected to Cosmos DB database {self.config.database_name}")

        except CosmosHttpResponseError as e:
            if e.status_code == 401:
                raise AuthenticationError(self.config.endpoint, str(e)) from e
            raise StorageConnectionError(self.config.endpoint, e) from e
        except Exception as e:
            raise StorageConnectionError(self.config.endpoint, e) from e

    async def _ensure_container(self, name: str, partition_key_path: str) -> None:
        """Ensure a container exists, creating if necessary."""
        if self._database is None:
            raise StorageIOError("ensure_container", cause=RuntimeError("Database not initialized"))

        container = await self._database.create_container_if_not_exists(
            id=name,
            partition_key=PartitionKey(path=partition_key_path),
        )
        self._containers[name] = container

    async def close(self) -> None:
        """Close the Cosmos DB connection."""
        if self._client:
            await self._client.close()
            self._client = None

        if self._credential:
            await self._credential.close()
            self._credential = None

        self._database = None
        self._containers = {}
        self._initialized = False

    async def __aenter__(self) -> "CosmosRecordStore":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_container(self, name: str) -> ContainerProxy:
        if not self._initialized:
            raise StorageIOError("get_container", cause=RuntimeError("Client not initialized"))
        if name not in self._containers:
            raise StorageIOError("get_container", cause=KeyError(f"Unknown container: {name}"))
        return self._containers[name]

    # =========================================================================
    # RecordStore
    # =========================================================================

    async def insert_access_record(self, record: AccessRecord) -> AccessRecord:
        item = record.to_dict()
        item["id"] = record.id or str(uuid.uuid4())
        try:
            container = self._get_container(ACCESS_CONTAINER)
            created = await self._with_retry(lambda: container.create_item(body=item))
            return AccessRecord.from_dict(created)
        except _ROW_ERRORS as e:
            raise AccessLogWriteError(record.email, e) from e

    async def latest_document(self) -> DocumentRef | None:
        try:
            rows = await self._query(
                DOCUMENTS_CONTAINER, "SELECT TOP 1 * FROM c ORDER BY c.created_at DESC"
            )
            return DocumentRef.from_dict(rows[0]) if rows else None
        except _ROW_ERRORS as e:
            raise DocumentLookupError("latest_document", e) from e

    async def list_documents(self) -> list[DocumentRef]:
        try:
            rows = await self._query(
                DOCUMENTS_CONTAINER, "SELECT * FROM c ORDER BY c.created_at DESC"
            )
            return [DocumentRef.from_dict(row) for row in rows]
        except _ROW_ERRORS as e:
            raise DocumentLookupError("list_documents", e) from e

    async def insert_document(self, name: str, storage_path: str, size: int) -> DocumentRef:
        document = DocumentRef(
            id=str(uuid.uuid4()),
            name=name,
            storage_path=storage_path,
            size=size,
            created_at=self._clock(),
        )
        try:
            container = self._get_container(DOCUMENTS_CONTAINER)
            await self._with_retry(lambda: container.create_item(body=document.to_dict()))
        except (StorageIOError, CosmosHttpResponseError) as e:
            raise DocumentLookupError("insert_document", e) from e
        return document

    async def delete_document(self, document_id: str) -> bool:
        try:
            container = self._get_container(DOCUMENTS_CONTAINER)
            await self._with_retry(
                lambda: container.delete_item(item=document_id, partition_key=document_id)
            )
            return True
        except CosmosResourceNotFoundError:
            return False
        except (StorageIOError, CosmosHttpResponseError) as e:
            raise DocumentLookupError("delete_document", e) from e

    async def list_access_records(self) -> list[AccessRecord]:
        try:
            rows = await self._query(
                ACCESS_CONTAINER, "SELECT * FROM c ORDER BY c.accessed_at DESC"
            )
            return [AccessRecord.from_dict(row) for row in rows]
        except _ROW_ERRORS as e:
            raise ExternalStoreError("list_access_records", e) from e

    async def is_admin(self, email: str) -> bool:
        try:
            rows = await self._query(
                ADMIN_USERS_CONTAINER,
                "SELECT TOP 1 c.email FROM c WHERE LOWER(c.email) = @email",
                parameters=[{"name": "@email", "value": email.lower()}],
            )
        except (StorageIOError, CosmosHttpResponseError) as e:
            raise ExternalStoreError("is_admin", e) from e
        return bool(rows)

    # =========================================================================
    # Query helpers
    # =========================================================================

    async def _query(
        self,
        container_name: str,
        query: str,
        parameters: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        container = self._get_container(container_name)

        async def run() -> list[dict[str, Any]]:
            results: list[dict[str, Any]] = []
            async for item in container.query_items(query=query, parameters=parameters or []):
                results.append(item)
            return results

        return await self._with_retry(run)

    async def _with_retry(self, operation: Any) -> Any:
        """Execute an operation with retry logic for transient failures.

        Client errors (4xx other than 429) are raised immediately.
        """
        last_error: Exception | None = None

        for attempt in range(self.config.max_retries):
            try:
                return await operation()
            except CosmosResourceNotFoundError:
                raise
            except CosmosHttpResponseError as e:
                if e.status_code is not None and 400 <= e.status_code < 500 and e.status_code != 429:
                    raise

                last_error = e
                if attempt < self.config.max_retries - 1:
                    delay = self.config.retry_delay * (2**attempt)
                    logger.warning(f"Cosmos DB call failed ({e.status_code}), retrying in {delay}s")
                    await asyncio.sleep(delay)
            except Exception as e:
                # Don't retry unknown errors
                raise StorageIOError("cosmos_operation", cause=e) from e

        if last_error:
            raise StorageIOError("cosmos_operation", cause=last_error) from last_error
        raise StorageIOError("cosmos_operation", cause=RuntimeError("Unexpected retry failure"))
