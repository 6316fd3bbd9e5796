"""
Key-value storage backends with batch operations.

Both backends expose the same interface: get/put/delete/exists/write_batch/close.
"""
import logging
from typing import Optional
from contextlib import contextmanager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class MemoryDB:
    """In-process backend, used for simulations and tests."""

    def __init__(self):
        self._data: dict[bytes, bytes] = {}
        self._closed = False

    def get(self, key: bytes) -> Optional[bytes]:
        if self._closed:
            raise RuntimeError("Database is closed")
        return self._data.get(key)

    def put(self, key: bytes, value: bytes):
        if self._closed:
            raise RuntimeError("Database is closed")
        self._data[key] = value

    def delete(self, key: bytes):
        if self._closed:
            raise RuntimeError("Database is closed")
        self._data.pop(key, None)

    def exists(self, key: bytes) -> bool:
        return self.get(key) is not None

    @contextmanager
    def write_batch(self):
        """
        Context manager for batch writes. Nothing is written if the block raises.

        Example:
            with db.write_batch() as batch:
                batch.put(b'key1', b'value1')
                batch.delete(b'key2')
        """
        if self._closed:
            raise RuntimeError("Database is closed")

        batch = _MemoryBatch()
        yield batch
        for op, key, value in batch.ops:
            if op == 'put':
                self._data[key] = value
            else:
                self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)

    def close(self):
        self._closed = True


class _MemoryBatch:
    def __init__(self):
        self.ops = []

    def put(self, key: bytes, value: bytes):
        self.ops.append(('put', key, value))

    def delete(self, key: bytes):
        self.ops.append(('delete', key, None))


class LevelDB:
    """On-disk backend backed by LevelDB (requires the `leveldb` extra)."""

    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 64 * 1024 * 1024,  # 64MB
                 max_open_files: int = 1000):
        """
        Initialize database with performance optimizations.

        Args:
            db_path: Path to database directory
            create_if_missing: Create database if it doesn't exist
            write_buffer_size: Size of write buffer
            max_open_files: Maximum number of open files
        """
        import plyvel

        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
            )
            self._closed = False
            logger.info(f"Database opened at {db_path}")
        except plyvel.Error as e:
            logger.error(f"Failed to open database at {db_path}: {e}")
            raise

    def get(self, key: bytes) -> Optional[bytes]:
        """
        Get value by key.

        Returns None if key doesn't exist.
        """
        if self._closed:
            raise RuntimeError("Database is closed")
        return self._db.get(key)

    def put(self, key: bytes, value: bytes):
        """Put a key-value pair."""
        if self._closed:
            raise RuntimeError("Database is closed")
        self._db.put(key, value)

    def delete(self, key: bytes):
        """Delete a key."""
        if self._closed:
            raise RuntimeError("Database is closed")
        self._db.delete(key)

    def exists(self, key: bytes) -> bool:
        """Check if key exists."""
        return self.get(key) is not None

    @contextmanager
    def write_batch(self):
        """Context manager for atomic batch writes."""
        if self._closed:
            raise RuntimeError("Database is closed")

        with self._db.write_batch(transaction=True) as batch:
            yield batch

    def close(self):
        """Close the database."""
        if not self._closed:
            self._db.close()
            self._closed = True
            logger.info("Database closed")
