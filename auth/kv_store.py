from __future__ import annotations

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

Record = dict
Predicate = Callable[[Record], bool]


class KeyValueStore(ABC):
    """Keyed JSON records with atomic conditional writes.

    Every mutation runs under the instance lock, so ``put_if_absent`` and
    ``pop_if`` are indivisible read-check-write steps for all callers
    sharing the instance.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def get(self, key: str) -> Record | None:
        with self._lock:
            return self._read_all().get(key)

    def values(self) -> list[Record]:
        with self._lock:
            return list(self._read_all().values())

    def put_if_absent(self, key: str, record: Record) -> bool:
        with self._lock:
            records = self._read_all()
            if key in records:
                return False
            records[key] = record
            self._write_all(records)
            return True

    def pop_if(self, key: str, predicate: Predicate) -> Record | None:
        with self._lock:
            records = self._read_all()
            record = records.get(key)
            if record is None or not predicate(record):
                return None
            del records[key]
            self._write_all(records)
            return record

    def delete_where(self, predicate: Predicate) -> int:
        with self._lock:
            records = self._read_all()
            doomed = [key for key, record in records.items() if predicate(record)]
            if not doomed:
                return 0
            for key in doomed:
                del records[key]
            self._write_all(records)
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._read_all())

    @abstractmethod
    def _read_all(self) -> dict[str, Record]:
        raise NotImplementedError

    @abstractmethod
    def _write_all(self, records: dict[str, Record]) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, Record] = {}

    def _read_all(self) -> dict[str, Record]:
        return dict(self._records)

    def _write_all(self, records: dict[str, Record]) -> None:
        self._records = records


class FileKeyValueStore(KeyValueStore):
    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)

    def _read_all(self) -> dict[str, Record]:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError(
                f"Store file {self._path} is invalid; expected top-level JSON object."
            )
        return raw

    def _write_all(self, records: dict[str, Record]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
