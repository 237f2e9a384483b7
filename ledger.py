"""
Append-only investment ledger: one comma-delimited file per user.

Header row is investmentName,investmentType,amount,value,timestamp. Fields are
written in that order with no quoting or escaping, so investment names must not
contain a comma or a line break (save() rejects them).
"""

import os
import threading
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote, unquote

from models import LEDGER_FIELDS, ONE_MS, Snapshot, truncate_ms, utc_now

HEADER = ",".join(LEDGER_FIELDS)


def ledger_filename(user_id: str) -> str:
    """Percent-encoded file name for a user id; `user_id_from_filename` reverses it."""
    user_id = str(user_id)
    if not user_id:
        raise ValueError("user id must not be empty")
    return quote(user_id, safe="@").replace(".", "%2E") + ".csv"


def user_id_from_filename(filename: str) -> str:
    return unquote(filename[: -len(".csv")] if filename.endswith(".csv") else filename)


class Ledger:
    def __init__(self, data_dir: Path, clock: Callable = utc_now):
        self.data_dir = Path(data_dir)
        self.clock = clock
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._last_stamp = {}

    def _path(self, user_id: str) -> Path:
        return self.data_dir / ledger_filename(user_id)

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    def _read_unlocked(self, path: Path) -> list:
        if not path.exists():
            return []
        snapshots = []
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.rstrip("\r\n")
                if lineno == 1 or not line.strip():
                    continue
                try:
                    snapshots.append(Snapshot.from_row(line.split(",")))
                except ValueError as e:
                    print(f"[Ledger] {path.name}:{lineno} skipped malformed row ({e})")
        return snapshots

    def read(self, user_id: str) -> list:
        """All snapshots for a user, in file (append) order."""
        path = self._path(user_id)
        with self._lock_for(path):
            return self._read_unlocked(path)

    def read_investment(self, user_id: str, investment_name: str) -> list:
        return [s for s in self.read(user_id) if s.investment_name == investment_name]

    def investment_names(self, user_id: str) -> list:
        """Distinct investment names in first-appearance order."""
        seen = {}
        for s in self.read(user_id):
            seen.setdefault(s.investment_name, None)
        return list(seen)

    def append(self, user_id: str, investment_name: str, investment_type, amount: float, value: float) -> Snapshot:
        """Stamp and append one snapshot. Stamps strictly increase within a user's file."""
        path = self._path(user_id)
        with self._lock_for(path):
            last = self._last_stamp.get(path)
            if last is None:
                existing = self._read_unlocked(path)
                last = max((s.timestamp for s in existing), default=None)
            stamp = truncate_ms(self.clock())
            if last is not None and stamp <= last:
                stamp = last + ONE_MS
            snapshot = Snapshot(investment_name, investment_type, float(amount), float(value), stamp)
            self._write_row_unlocked(path, snapshot)
            self._last_stamp[path] = stamp
            return snapshot

    def _write_row_unlocked(self, path: Path, snapshot: Snapshot) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        new_file = not path.exists() or path.stat().st_size == 0
        line = ",".join(snapshot.to_row()) + "\n"
        if new_file:
            line = HEADER + "\n" + line
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())

    def user_ids(self) -> list:
        """Real user ids of every ledger file, decoded from the file names."""
        if not self.data_dir.exists():
            return []
        return sorted(user_id_from_filename(p.name) for p in self.data_dir.glob("*.csv"))

    def latest(self, user_id: str, investment_name: str) -> Optional[Snapshot]:
        matches = self.read_investment(user_id, investment_name)
        return max(matches, key=lambda s: s.timestamp) if matches else None
