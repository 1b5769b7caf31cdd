from __future__ import annotations

from pathlib import Path

import pytest

from siteforge.core.models import FileUpsert, Site, TokenUsage
from siteforge.core.storage import ChangeBatch, JsonSiteStore, load_site, save_site
from siteforge.filetree import FileTree, TreeChange


class FlakyStore:
    def __init__(self) -> None:
        self.fail = True
        self.calls = []

    def load_files(self, site_id: str):
        return {}

    def upsert(self, site_id, files) -> None:
        self.calls.append(("upsert", [f.path for f in files]))
        if self.fail:
            raise OSError("store unavailable")

    def delete(self, site_id, paths) -> None:
        self.calls.append(("delete", list(paths)))


def test_save_and_load_site(tmp_path: Path) -> None:
    site = Site(domain="luna", files={"index.html": "<p>é</p>"}, history=["make it"], usage=TokenUsage(3, 4))
    target = tmp_path / "nested" / "luna.json"
    save_site(target, site)
    loaded = load_site(target)
    assert loaded.files == site.files
    assert loaded.history == ["make it"]
    assert loaded.usage.total_tokens == 7


def test_json_store_upsert_and_delete_are_idempotent(tmp_path: Path) -> None:
    store = JsonSiteStore(tmp_path)
    batch = [FileUpsert("index.html", "v1"), FileUpsert("css/a.css", "x")]
    store.upsert("site-1", batch)
    store.upsert("site-1", batch)
    assert store.load_files("site-1") == {"index.html": "v1", "css/a.css": "x"}

    store.delete("site-1", ["css/a.css", "never-existed.txt"])
    store.delete("site-1", ["css/a.css"])
    assert store.load_files("site-1") == {"index.html": "v1"}
    assert store.load_files("unknown") == {}


def test_json_store_rejects_path_like_site_ids(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        JsonSiteStore(tmp_path).load_files("../escape")


def test_batch_coalesces_tree_changes() -> None:
    tree = FileTree({"index.html": "", "old.css": "a"})
    batch = ChangeBatch()
    batch.add(tree.write("index.html", "1"))
    batch.add(tree.write("index.html", "2"))
    batch.add(tree.rename("old.css", "new.css"))
    batch.add(tree.create("tmp.txt", "t"))
    batch.add(tree.delete("tmp.txt"))

    assert batch.upserts == [FileUpsert("index.html", "2"), FileUpsert("new.css", "a")]
    assert batch.deletes == ["old.css", "tmp.txt"]

    batch.add(TreeChange(persist={"tmp.txt": "back"}))
    assert "tmp.txt" not in batch.deletes


def test_failed_flush_keeps_changes_pending() -> None:
    store = FlakyStore()
    batch = ChangeBatch().add(TreeChange(persist={"a.html": "1"}, delete=["b.html"]))

    with pytest.raises(OSError):
        batch.flush(store, "site")
    assert batch

    store.fail = False
    assert batch.flush(store, "site") == 2
    assert not batch
    assert store.calls == [("upsert", ["a.html"]), ("upsert", ["a.html"]), ("delete", ["b.html"])]
    assert batch.flush(store, "site") == 0
