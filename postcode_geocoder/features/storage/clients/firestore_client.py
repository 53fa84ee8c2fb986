"""Firestoreクライアント"""
import os
from typing import Any, Optional

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore

from ....shared.exceptions.errors import StorageError
from ....shared.logging.config import get_logger

logger = get_logger(__name__)


class FirestoreClient:
    """Firestore操作クライアント"""

    def __init__(self, project_id: Optional[str], database_id: str = "(default)") -> None:
        """
        Firestoreクライアントを初期化

        Args:
            project_id: GCPプロジェクトID
            database_id: データベースID（デフォルトは"(default)"）
        """
        self.project_id = project_id
        self.database_id = database_id

        # エミュレータモードの検出
        emulator_host = os.environ.get("FIRESTORE_EMULATOR_HOST")

        try:
            self.client = firestore.Client(project=project_id, database=database_id)

            if emulator_host:
                logger.info(
                    f"Firestore client initialized (EMULATOR MODE): "
                    f"host={emulator_host}, project={project_id}, database={database_id}"
                )
            else:
                logger.info(
                    f"Firestore client initialized: project={project_id}, database={database_id}"
                )
        except Exception as e:
            raise StorageError(f"Failed to initialize Firestore client: {e}") from e

    def get_collection(self, collection_path: str) -> firestore.CollectionReference:
        """
        コレクション参照を取得

        Args:
            collection_path: コレクションパス

        Returns:
            CollectionReference: コレクション参照
        """
        return self.client.collection(collection_path)

    def get_document(
        self, collection_path: str, document_id: str
    ) -> Optional[dict[str, Any]]:
        """
        ドキュメントを取得

        Args:
            collection_path: コレクションパス
            document_id: ドキュメントID

        Returns:
            Optional[dict[str, Any]]: ドキュメントデータ（存在しない場合はNone）
        """
        try:
            doc = self.get_collection(collection_path).document(document_id).get()

            if doc.exists:
                return doc.to_dict()
            return None

        except Exception as e:
            raise StorageError(
                f"Failed to get document {document_id} from {collection_path}: {e}"
            ) from e

    def create_document(
        self, collection_path: str, document_id: str, data: dict[str, Any]
    ) -> bool:
        """
        ドキュメントを新規作成（既存の場合は何もしない）

        Args:
            collection_path: コレクションパス
            document_id: ドキュメントID
            data: ドキュメントデータ

        Returns:
            bool: 作成した場合True、既に存在した場合False
        """
        try:
            self.get_collection(collection_path).document(document_id).create(data)
            logger.debug(f"Document {document_id} created in {collection_path}")
            return True

        except AlreadyExists:
            logger.debug(f"Document {document_id} already exists in {collection_path}")
            return False
        except Exception as e:
            raise StorageError(
                f"Failed to create document {document_id} in {collection_path}: {e}"
            ) from e

    def count_documents(self, collection_path: str) -> int:
        """
        ドキュメント数をカウント

        Args:
            collection_path: コレクションパス

        Returns:
            int: ドキュメント数
        """
        try:
            # count()メソッドを使用（Firestore v2.11.0以降）
            result = self.get_collection(collection_path).count().get()
            return result[0][0].value

        except Exception as e:
            raise StorageError(
                f"Failed to count documents in {collection_path}: {e}"
            ) from e
