"""SQLite座標リポジトリ"""
import sqlite3
import threading
from pathlib import Path
from typing import Optional, Union

from ....shared.exceptions.errors import StorageError
from ....shared.logging.config import get_logger
from ...geocoding.domain.models import CacheEntry

logger = get_logger(__name__)

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS geocode_cache ("
    "key TEXT PRIMARY KEY, "
    "latitude REAL NOT NULL, "
    "longitude REAL NOT NULL, "
    "precision TEXT NOT NULL, "
    "resolved_at TEXT NOT NULL)"
)


class SqliteCoordinateRepository:
    """
    SQLiteファイルに座標を保持するリポジトリ

    sqlite3の接続はスレッドをまたいで共有できないため、
    スレッドごとに接続を開く。WALモードなので読み取りは並行に行える。
    """

    def __init__(self, path: Union[str, Path]) -> None:
        """
        Args:
            path: SQLiteファイルのパス（親ディレクトリは自動作成）
        """
        self._path = Path(path)
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(_SCHEMA)
            conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Failed to open geocode cache at {self._path}: {e}") from e

        logger.info(f"SqliteCoordinateRepository initialized: {self._path}")

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            row = self._get_connection().execute(
                "SELECT key, latitude, longitude, precision, resolved_at "
                "FROM geocode_cache WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key} from {self._path}: {e}") from e

        if row is None:
            return None
        return CacheEntry.from_store_dict(
            {
                "key": row[0],
                "latitude": row[1],
                "longitude": row[2],
                "precision": row[3],
                "resolved_at": row[4],
            }
        )

    def put(self, entry: CacheEntry) -> bool:
        conn = self._get_connection()
        try:
            cur = conn.execute(
                "INSERT OR IGNORE INTO geocode_cache "
                "(key, latitude, longitude, precision, resolved_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    entry.key,
                    entry.latitude,
                    entry.longitude,
                    entry.precision.value,
                    entry.resolved_at.isoformat(),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {entry.key} to {self._path}: {e}") from e
        return cur.rowcount == 1

    def count(self) -> int:
        try:
            row = self._get_connection().execute(
                "SELECT COUNT(*) FROM geocode_cache"
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count entries in {self._path}: {e}") from e
        return int(row[0])

    def close(self) -> None:
        """全スレッドの接続を閉じる"""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            # 書き込みが競合した場合は最大5秒待つ
            conn = sqlite3.connect(str(self._path), timeout=5.0, check_same_thread=False)
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn
