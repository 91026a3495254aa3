"""File-backed durable vote ledger."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from rising_stars.domain.models import VoteRecord
from rising_stars.services.votes import VoteRepository


@dataclass
class JsonFileVoteRepository(VoteRepository):
    """Keeps server-confirmed votes in a JSON file so dedup survives restarts."""

    path: Path
    _records: dict[tuple[str, str], VoteRecord] | None = field(
        default=None, init=False, repr=False
    )

    def contains(self, identity: str, video_id: str) -> bool:
        """Return True when a vote is recorded for the key."""
        return (identity, video_id) in self._loaded()

    def add(self, record: VoteRecord) -> bool:
        """Insert the record unless the key exists; return True when inserted."""
        records = self._loaded()
        if record.key in records:
            return False
        records[record.key] = record
        self._flush(records)
        return True

    def list_for(self, identity: str) -> list[VoteRecord]:
        """Return the votes recorded for an identity."""
        return [
            record for record in self._loaded().values() if record.identity == identity
        ]

    def _loaded(self) -> dict[tuple[str, str], VoteRecord]:
        if self._records is None:
            self._records = _read(self.path)
        return self._records

    def _flush(self, records: dict[tuple[str, str], VoteRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        rows = [
            {
                "identity": record.identity,
                "video_id": record.video_id,
                "voted_at": record.voted_at.isoformat(),
            }
            for record in records.values()
        ]
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps({"votes": rows}, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


def _read(path: Path) -> dict[tuple[str, str], VoteRecord]:
    if not path.exists():
        return {}
    payload = json.loads(path.read_text(encoding="utf-8"))
    records: dict[tuple[str, str], VoteRecord] = {}
    for row in payload.get("votes", []):
        record = VoteRecord(
            identity=str(row["identity"]),
            video_id=str(row["video_id"]),
            voted_at=datetime.fromisoformat(row["voted_at"]),
        )
        records[record.key] = record
    return records
