"""
Journaled state store.

Values are msgpack-encoded through codec.py and written to the backing DB
only when the outermost atomic unit completes, in a single write batch.
Nested units join the enclosing one: a failure at any depth restores the
checkpoint taken when that depth was entered and re-raises, so an uncaught
failure unwinds the whole outer unit.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from swapcover import codec

logger = logging.getLogger(__name__)

_DELETED = None


@dataclass(frozen=True)
class Event:
    """A log record emitted by a contract."""
    address: bytes
    name: str
    args: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {'address': self.address, 'name': self.name, 'args': dict(self.args)}


class StateStore:
    def __init__(self, db):
        self.db = db
        self._writes: dict[bytes, bytes | None] = {}
        self._logs: list[Event] = []
        self._checkpoints: list[tuple[dict, int]] = []
        self.committed_logs: list[Event] = []

    @property
    def depth(self) -> int:
        """Number of atomic units currently open."""
        return len(self._checkpoints)

    def get(self, key: bytes, default=None):
        if key in self._writes:
            raw = self._writes[key]
        else:
            raw = self.db.get(key)
        if raw is None:
            return default
        return codec.unpackb(raw)

    def set(self, key: bytes, value):
        encoded = codec.packb(value)
        if self._checkpoints:
            self._writes[key] = encoded
        else:
            self.db.put(key, encoded)

    def delete(self, key: bytes):
        if self._checkpoints:
            self._writes[key] = _DELETED
        else:
            self.db.delete(key)

    def log(self, event: Event):
        if self._checkpoints:
            self._logs.append(event)
        else:
            self.committed_logs.append(event)

    @contextmanager
    def atomic(self):
        """
        Run a block as one unit of work.

        Example:
            with state.atomic():
                state.set(b'a', 1)
                raise RuntimeError()  # b'a' is never written
        """
        self._checkpoints.append((dict(self._writes), len(self._logs)))
        try:
            yield self
        except BaseException:
            writes, log_count = self._checkpoints.pop()
            self._writes = writes
            del self._logs[log_count:]
            logger.debug(f"Reverted unit of work at depth {len(self._checkpoints)}")
            raise
        else:
            self._checkpoints.pop()
            if not self._checkpoints:
                self._commit()

    def _commit(self):
        if self._writes:
            with self.db.write_batch() as batch:
                for key, value in self._writes.items():
                    if value is _DELETED:
                        batch.delete(key)
                    else:
                        batch.put(key, value)
        self.committed_logs.extend(self._logs)
        logger.debug(f"Committed {len(self._writes)} writes, {len(self._logs)} events")
        self._writes = {}
        self._logs = []
