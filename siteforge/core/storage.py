"""Persistence of sites and incremental file changes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Protocol, Sequence

from .models import FileUpsert, Site

logger = logging.getLogger(__name__)


def save_site(path: str | Path, site: Site) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(site.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")


def load_site(path: str | Path) -> Site:
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    return Site.from_dict(data)


class SiteStore(Protocol):
    """Where edited files end up. Both operations must be idempotent."""

    def load_files(self, site_id: str) -> Dict[str, str]:
        ...

    def upsert(self, site_id: str, files: Sequence[FileUpsert]) -> None:
        ...

    def delete(self, site_id: str, paths: Sequence[str]) -> None:
        ...


class JsonSiteStore:
    """Keeps one ``<site_id>.json`` file of ``{path: content}`` per site."""

    def __init__(self, root_dir: str | Path) -> None:
        self.root_dir = Path(root_dir)

    def _file_for(self, site_id: str) -> Path:
        if not site_id or "/" in site_id or "\\" in site_id or site_id in {".", ".."}:
            raise ValueError(f"Invalid site id: {site_id!r}")
        return self.root_dir / f"{site_id}.json"

    def load_files(self, site_id: str) -> Dict[str, str]:
        path = self._file_for(site_id)
        if not path.exists():
            return {}
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, site_id: str, files: Dict[str, str]) -> None:
        path = self._file_for(site_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(files, indent=2, ensure_ascii=False, sort_keys=True), encoding="utf-8")
        tmp.replace(path)

    def upsert(self, site_id: str, files: Sequence[FileUpsert]) -> None:
        current = self.load_files(site_id)
        for item in files:
            current[item.path] = item.content
        self._write(site_id, current)
        logger.debug("stored %d file(s) for %s", len(files), site_id)

    def delete(self, site_id: str, paths: Sequence[str]) -> None:
        current = self.load_files(site_id)
        for path in paths:
            current.pop(path, None)
        self._write(site_id, current)
        logger.debug("removed %d file(s) for %s", len(paths), site_id)


class ChangeBatch:
    """Collects file-tree changes until they are flushed to a store.

    Later changes to the same path win: writing a path cancels a pending
    delete of it and deleting a path drops its pending write. The batch is
    only cleared once the store accepted everything, so a failed flush can
    simply be retried.
    """

    def __init__(self) -> None:
        self._upserts: Dict[str, str] = {}
        self._deletes: Dict[str, None] = {}

    def __bool__(self) -> bool:
        return bool(self._upserts or self._deletes)

    def add(self, change) -> "ChangeBatch":
        """Merge a :class:`~siteforge.filetree.TreeChange` into the batch."""
        for path in change.delete:
            self._upserts.pop(path, None)
            self._deletes[path] = None
        for path, content in change.persist.items():
            self._deletes.pop(path, None)
            self._upserts[path] = content
        return self

    @property
    def upserts(self) -> List[FileUpsert]:
        return [FileUpsert(path, content) for path, content in sorted(self._upserts.items())]

    @property
    def deletes(self) -> List[str]:
        return sorted(self._deletes)

    def flush(self, store: SiteStore, site_id: str) -> int:
        upserts = self.upserts
        deletes = self.deletes
        if upserts:
            store.upsert(site_id, upserts)
        if deletes:
            store.delete(site_id, deletes)
        self._upserts.clear()
        self._deletes.clear()
        count = len(upserts) + len(deletes)
        if count:
            logger.info("Flushed %d change(s) for %s", count, site_id)
        return count
