"""Local file storage for uploaded documents and resources.

Files land under `UPLOAD_DIR/<folder>/` and are served by the app at
`UPLOAD_BASE_URL`. The returned URL is what gets persisted, so swapping
in an object store only means providing another `save`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

_SAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class StoredFile:
    url: str
    path: Path
    size: int


def sanitize_filename(filename: str) -> str:
    name = Path(filename).name
    cleaned = _SAFE_CHARS.sub("_", name).strip("._")
    return cleaned[:120] or "file"


class LocalFileStorage:
    def __init__(self, root: Path, base_url: str = "/uploads"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def save(self, payload: bytes, folder: str, filename: str) -> StoredFile:
        """Write `payload` under `folder` with a collision-free name."""
        safe_folder = sanitize_filename(folder)
        target_dir = self.ensure_root() / safe_folder
        target_dir.mkdir(parents=True, exist_ok=True)
        stored_name = f"{uuid4().hex[:12]}_{sanitize_filename(filename)}"
        path = target_dir / stored_name
        path.write_bytes(payload)
        return StoredFile(url=f"{self.base_url}/{safe_folder}/{stored_name}", path=path, size=len(payload))

    def delete_url(self, url: str) -> bool:
        """Remove a previously stored file; unknown URLs are ignored."""
        if not url.startswith(self.base_url + "/"):
            return False
        rel = url[len(self.base_url) + 1:]
        path = (self.root / rel).resolve()
        if self.root.resolve() not in path.parents or not path.exists():
            return False
        path.unlink()
        return True
