"""File-backed storage for the bearer token."""

from dataclasses import dataclass
from pathlib import Path

from rising_stars.services.sessions import TokenStore


@dataclass
class FileTokenStore(TokenStore):
    """Persist the access token in a single file."""

    path: Path

    def load(self) -> str | None:
        """Return the stored token, if any."""
        if not self.path.exists():
            return None
        token = self.path.read_text(encoding="utf-8").strip()
        return token or None

    def save(self, token: str) -> None:
        """Store the token, replacing any previous one."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(token, encoding="utf-8")
        tmp_path.replace(self.path)

    def clear(self) -> None:
        """Remove the stored token."""
        self.path.unlink(missing_ok=True)
