"""Binary asset store for poster images."""

from abc import ABC, abstractmethod

from cinesearch.exceptions import ErrorCode, InputError, RecordNotFoundError
from cinesearch.stores.models import StoredAsset


class AssetStore(ABC):
    """Abstract base class for binary asset storage."""

    @abstractmethod
    async def put(self, data: bytes, filename: str, content_type: str) -> str:
        """Store bytes and return the new asset id.

        Raises:
            InputError: If data is empty.
        """
        ...

    @abstractmethod
    async def get(self, asset_id: str) -> StoredAsset:
        """Fetch an asset.

        Raises:
            RecordNotFoundError: If the asset does not exist.
        """
        ...

    @abstractmethod
    async def delete(self, asset_id: str) -> None:
        """Delete an asset.

        Raises:
            RecordNotFoundError: If the asset does not exist.
        """
        ...


class InMemoryAssetStore(AssetStore):
    """Asset store held in a dict."""

    def __init__(self) -> None:
        self._assets: dict[str, StoredAsset] = {}

    async def put(self, data: bytes, filename: str, content_type: str) -> str:
        if not data:
            raise InputError("Cannot store an empty asset", details={"filename": filename})
        asset = StoredAsset(filename=filename, content_type=content_type, data=data)
        self._assets[asset.id] = asset
        return asset.id

    async def get(self, asset_id: str) -> StoredAsset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise RecordNotFoundError(
                f"Asset not found: {asset_id}",
                code=ErrorCode.ASSET_NOT_FOUND,
                details={"asset_id": asset_id},
            )
        return asset

    async def delete(self, asset_id: str) -> None:
        if self._assets.pop(asset_id, None) is None:
            raise RecordNotFoundError(
                f"Asset not found: {asset_id}",
                code=ErrorCode.ASSET_NOT_FOUND,
                details={"asset_id": asset_id},
            )

    def __len__(self) -> int:
        return len(self._assets)
