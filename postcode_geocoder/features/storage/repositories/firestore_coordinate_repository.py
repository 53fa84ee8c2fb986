"""Firestore座標リポジトリ"""
from typing import Optional

from ....shared.logging.config import get_logger
from ...geocoding.domain.models import CacheEntry
from ..clients.firestore_client import FirestoreClient

logger = get_logger(__name__)


class FirestoreCoordinateRepository:
    """ジオコーディング結果をFirestoreに永続化するリポジトリ"""

    COLLECTION_NAME = "geocode_cache"

    def __init__(
        self,
        firestore_client: FirestoreClient,
        collection_name: Optional[str] = None,
    ) -> None:
        """
        FirestoreCoordinateRepositoryを初期化

        Args:
            firestore_client: Firestoreクライアント
            collection_name: コレクション名（省略時は geocode_cache）
        """
        self.client = firestore_client
        self.collection_name = collection_name or self.COLLECTION_NAME
        logger.info(f"FirestoreCoordinateRepository initialized: {self.collection_name}")

    def get(self, key: str) -> Optional[CacheEntry]:
        """
        キャッシュエントリを取得

        Args:
            key: 正規化済み郵便番号（ドキュメントID）

        Returns:
            Optional[CacheEntry]: エントリ（存在しない場合はNone）

        Raises:
            StorageError: 取得に失敗した場合
        """
        data = self.client.get_document(self.collection_name, key)
        if data is None:
            return None
        data.setdefault("key", key)
        return CacheEntry.from_store_dict(data)

    def put(self, entry: CacheEntry) -> bool:
        """
        キャッシュエントリを保存（既存キーは上書きしない）

        Args:
            entry: キャッシュエントリ

        Returns:
            bool: 新規作成した場合True

        Raises:
            StorageError: 保存に失敗した場合
        """
        created = self.client.create_document(
            self.collection_name, entry.key, entry.to_store_dict()
        )
        if created:
            logger.debug(f"Geocode cached: {entry.key}")
        return created

    def count(self) -> int:
        return self.client.count_documents(self.collection_name)
