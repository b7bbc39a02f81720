"""Per-host connection and transfer history, persisted as JSON."""

import datetime
import json
import logging
import os
import shutil
from dataclasses import asdict, dataclass

from sshhop.config import HISTORY_PATH, LEGACY_HISTORY_PATH

logger = logging.getLogger(__name__)

MAX_TRANSFERS_PER_HOST = 10


@dataclass(frozen=True)
class HistoryEntry:
    direction: str  # "upload" or "download"
    local_path: str
    remote_path: str
    timestamp: str

    @classmethod
    def from_dict(cls, data):
        return cls(
            direction=data.get("direction", ""),
            local_path=data.get("local_path", ""),
            remote_path=data.get("remote_path", ""),
            timestamp=data.get("timestamp", ""),
        )


def _now():
    return datetime.datetime.now().isoformat(timespec="seconds")


def migrate_legacy_history(path, legacy_path):
    """Move a history file from its old location if the new one is absent."""
    if os.path.exists(path) or not os.path.exists(legacy_path):
        return False
    os.makedirs(os.path.dirname(path), exist_ok=True)
    shutil.copy2(legacy_path, path)
    try:
        os.remove(legacy_path)
    except OSError as e:
        logger.warning("Migrated history but could not remove %s: %s", legacy_path, e)
    logger.info("Migrated history from %s to %s", legacy_path, path)
    return True


class HistoryStore:
    """Connection counts and the last transfers for each host alias.

    The file is read once on construction and rewritten after every
    mutation.
    """

    def __init__(self, path=HISTORY_PATH, legacy_path=LEGACY_HISTORY_PATH):
        self.path = path
        if legacy_path:
            try:
                migrate_legacy_history(path, legacy_path)
            except OSError as e:
                logger.warning("History migration failed: %s", e)
        self.connections = self._load()

    def _load(self):
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("History file %s unreadable: %s", self.path, e)
            return {}
        connections = data.get("connections") if isinstance(data, dict) else None
        return connections if isinstance(connections, dict) else {}

    def save(self):
        os.makedirs(os.path.dirname(self.path) or ".", mode=0o700, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump({"connections": self.connections}, f, indent=2)
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            pass

    def _record(self, host):
        return self.connections.setdefault(host, {
            "host_name": host,
            "last_connect": "",
            "connect_count": 0,
            "transfer_history": [],
        })

    # ─── Connections ──────────────────────────────────────────────────────

    def record_connection(self, host):
        rec = self._record(host)
        rec["last_connect"] = _now()
        rec["connect_count"] = int(rec.get("connect_count", 0)) + 1
        self.save()

    def last_connection_time(self, host):
        rec = self.connections.get(host)
        if not rec or not rec.get("last_connect"):
            return None
        try:
            return datetime.datetime.fromisoformat(rec["last_connect"])
        except ValueError:
            return None

    def connection_count(self, host):
        rec = self.connections.get(host)
        return int(rec.get("connect_count", 0)) if rec else 0

    def all_connections(self):
        """Records sorted by last connection, most recent first."""
        return sorted(
            self.connections.values(),
            key=lambda r: r.get("last_connect", ""),
            reverse=True,
        )

    def sort_hosts_by_last_used(self, hosts):
        used = [h for h in hosts if self.last_connection_time(h)]
        unused = sorted(h for h in hosts if not self.last_connection_time(h))
        used.sort(key=self.last_connection_time, reverse=True)
        return used + unused

    def sort_hosts_by_most_used(self, hosts):
        def key(h):
            last = self.last_connection_time(h)
            return (-self.connection_count(h), -(last.timestamp() if last else 0), h)
        return sorted(hosts, key=key)

    def cleanup(self, current_hosts):
        """Forget hosts that are no longer in the SSH config."""
        keep = set(current_hosts)
        stale = [h for h in self.connections if h not in keep]
        for h in stale:
            del self.connections[h]
        self.save()
        return stale

    # ─── Transfers ────────────────────────────────────────────────────────

    def record_transfer(self, host, direction, local_path, remote_path):
        entry = HistoryEntry(direction, local_path, remote_path, _now())
        rec = self._record(host)
        rec["transfer_history"] = [asdict(entry)] + list(rec.get("transfer_history") or [])
        rec["transfer_history"] = rec["transfer_history"][:MAX_TRANSFERS_PER_HOST]
        rec["last_connect"] = entry.timestamp
        self.save()
        return entry

    def transfer_history(self, host):
        rec = self.connections.get(host) or {}
        return [HistoryEntry.from_dict(d) for d in rec.get("transfer_history") or []]

    def last_transfer(self, host):
        items = self.transfer_history(host)
        return items[0] if items else None
