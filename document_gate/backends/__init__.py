"""
Store adapters.

Hosted stores (Cosmos DB records, S3 objects) for production and
file-backed stores for local development.

Example:
    >>> from document_gate.backends import create_stores
    >>> records, objects = await create_stores(GateConfig.from_env())
"""

import logging

from ..config import GateConfig
from ..protocol import ObjectStore, RecordStore
from .cosmos import AUTH_DEFAULT_CREDENTIAL, AUTH_KEY, CosmosConfig, CosmosRecordStore
from .local import LocalObjectStore, LocalRecordStore
from .s3 import S3ObjectStore

logger = logging.getLogger(__name__)


async def create_stores(config: GateConfig) -> tuple[RecordStore, ObjectStore]:
    """Create the record and object stores a config points at.

    Cosmos DB is used when an endpoint is configured (key auth when a key
    is set, DefaultAzureCredential otherwise) and S3 when a bucket is
    configured. Anything not configured falls back to the local file
    stores under ``config.resolved_local_path``.
    """
    records: RecordStore
    objects: ObjectStore

    if config.cosmos_endpoint:
        records = await CosmosRecordStore.create(
            CosmosConfig(
                endpoint=config.cosmos_endpoint,
                key=config.cosmos_key,
                database_name=config.cosmos_database,
                auth_method=AUTH_KEY if config.cosmos_key else AUTH_DEFAULT_CREDENTIAL,
            )
        )
    else:
        logger.info(f"Using local record store at {config.resolved_local_path}")
        records = LocalRecordStore(config.resolved_local_path)

    if config.s3_bucket:
        objects = S3ObjectStore.from_config(config)
    else:
        objects = LocalObjectStore(
            config.resolved_local_path / "objects", secret=config.signing_secret
        )

    return records, objects


__all__ = [
    "create_stores",
    "CosmosConfig",
    "CosmosRecordStore",
    "S3ObjectStore",
    "LocalRecordStore",
    "LocalObjectStore",
]
