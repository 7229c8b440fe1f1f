"""Record, ingestion job and asset stores."""

from cinesearch.stores.assets import AssetStore, InMemoryAssetStore
from cinesearch.stores.jobs import IngestionJobStore, InMemoryIngestionJobStore
from cinesearch.stores.models import (
    EMBEDDING_SOURCES,
    CatalogRecord,
    IngestionJob,
    JobStatus,
    RecordFields,
    RecordFilter,
    RecordUpdate,
    StoredAsset,
    normalize_title,
)
from cinesearch.stores.records import InMemoryRecordStore, RecordStore

__all__ = [
    "EMBEDDING_SOURCES",
    "AssetStore",
    "CatalogRecord",
    "InMemoryAssetStore",
    "InMemoryIngestionJobStore",
    "InMemoryRecordStore",
    "IngestionJob",
    "IngestionJobStore",
    "JobStatus",
    "RecordFields",
    "RecordFilter",
    "RecordStore",
    "RecordUpdate",
    "StoredAsset",
    "normalize_title",
]
