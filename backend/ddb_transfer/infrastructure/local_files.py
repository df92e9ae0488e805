from __future__ import annotations

from pathlib import Path

from ..errors import DocumentNotFound


class LocalFiles:
    """Filesystem access for export/import documents, relative to a base directory."""

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

    def resolve(self, path: str | Path, base_dir: str | Path | None = None) -> Path:
        p = Path(path).expanduser()
        if p.is_absolute():
            return p
        return Path(base_dir).expanduser() / p if base_dir else self.base_dir / p

    def read_bytes(self, path: str | Path) -> bytes:
        p = self.resolve(path)
        if not p.is_file():
            raise DocumentNotFound(message=f"File not found: {p}", path=str(p))
        return p.read_bytes()

    def write_text(self, path: str | Path, text: str) -> int:
        """Write `text` as UTF-8, replacing any existing file. Returns the size in bytes."""
        p = self.resolve(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        data = text.encode("utf-8")
        p.write_bytes(data)
        return len(data)
