from __future__ import annotations

import pytest

from siteforge.core.errors import (
    AlreadyExists,
    FolderCollision,
    InvalidMove,
    InvalidPath,
    PathNotFound,
    ProtectedPath,
)
from siteforge.filetree import FileTree, normalize_path


def _tree() -> FileTree:
    return FileTree(
        {
            "index.html": "<html></html>",
            "about.html": "about",
            "styles/style.css": "body{}",
            "docs/a.txt": "A",
            "docs/guide/b.txt": "B",
            "docs/guide/c.txt": "C",
        }
    )


def test_normalize_path() -> None:
    assert normalize_path("/docs//guide\\b.txt") == "docs/guide/b.txt"
    assert normalize_path("./a/./b") == "a/b"
    with pytest.raises(InvalidPath):
        normalize_path("../secret")
    with pytest.raises(InvalidPath):
        normalize_path(" / ")


def test_create_distinguishes_file_and_folder_collisions() -> None:
    tree = _tree()
    change = tree.create("contact.html", "hi")
    assert change.persist == {"contact.html": "hi"}
    assert tree.read("contact.html") == "hi"
    with pytest.raises(AlreadyExists):
        tree.create("about.html")
    with pytest.raises(FolderCollision):
        tree.create("docs")
    with pytest.raises(AlreadyExists):
        tree.create("about.html/child.txt")


def test_create_folder_adds_hidden_placeholder() -> None:
    tree = _tree()
    tree.create_folder("images")
    assert tree.is_folder("images")
    names = [node.name for node in tree.list().children]
    assert "images" in names
    images = next(node for node in tree.list().children if node.name == "images")
    assert images.children == []
    with pytest.raises(FolderCollision):
        tree.create_folder("images")


def test_rename_into_occupied_path_keeps_both_entries() -> None:
    tree = _tree()
    change = tree.rename("about.html", "index.html")
    assert change.moved == {"about.html": "index-1.html"}
    assert tree.read("index.html") == "<html></html>"
    assert tree.read("index-1.html") == "about"
    assert not tree.is_file("about.html")

    tree.create("about.html", "second")
    tree.rename("about.html", "index.html")
    assert tree.read("index-2.html") == "second"


def test_unique_path_for_extensionless_names_and_folders() -> None:
    tree = FileTree({"index.html": "", "LICENSE": "", ".env": "", "docs/x": ""})
    assert tree.unique_path("LICENSE") == "LICENSE-1"
    assert tree.unique_path(".env") == ".env-1"
    assert tree.unique_path("docs", folder=True) == "docs-1"
    assert tree.unique_path("free.txt") == "free.txt"


def test_rename_folder_rewrites_every_descendant() -> None:
    tree = _tree()
    change = tree.rename("docs", "manual")
    assert sorted(change.moved.values()) == ["manual/a.txt", "manual/guide/b.txt", "manual/guide/c.txt"]
    assert tree.descendants("docs") == []
    assert tree.read("manual/guide/c.txt") == "C"
    assert change.relocate("docs/guide") == "manual/guide"


def test_move_folder_is_all_or_nothing() -> None:
    tree = _tree()
    tree.create("archive/docs/old.txt", "old")
    before = tree.snapshot()

    change = tree.move("docs", "archive")

    assert sorted(change.delete) == ["docs/a.txt", "docs/guide/b.txt", "docs/guide/c.txt"]
    assert tree.read("archive/docs-1/guide/b.txt") == "B"
    assert tree.read("archive/docs/old.txt") == "old"
    assert len(tree) == len(before)
    assert not tree.is_folder("docs")


def test_move_into_itself_is_rejected_without_mutation() -> None:
    tree = _tree()
    before = tree.snapshot()
    with pytest.raises(InvalidMove):
        tree.move("docs", "docs/guide")
    with pytest.raises(InvalidMove):
        tree.move("docs", "docs")
    assert tree.snapshot() == before


def test_move_to_same_parent_is_a_noop() -> None:
    tree = _tree()
    assert tree.move("docs/a.txt", "docs").is_empty
    assert tree.move("about.html", "").is_empty


def test_move_file_to_root_and_into_file_destination() -> None:
    tree = _tree()
    change = tree.move("docs/guide/b.txt", "/")
    assert change.moved == {"docs/guide/b.txt": "b.txt"}
    with pytest.raises(InvalidMove):
        tree.move("b.txt", "about.html")


def test_delete_folder_removes_prefix_only() -> None:
    tree = _tree()
    tree.create("docs-extra.txt", "keep")
    change = tree.delete("docs")
    assert change.delete == ["docs/a.txt", "docs/guide/b.txt", "docs/guide/c.txt"]
    assert tree.read("docs-extra.txt") == "keep"
    with pytest.raises(PathNotFound):
        tree.delete("docs")


def test_root_file_is_protected() -> None:
    tree = _tree()
    with pytest.raises(ProtectedPath):
        tree.delete("index.html")
    with pytest.raises(ProtectedPath):
        tree.rename("index.html", "home.html")
    nested = FileTree({"site/index.html": "", "site/a.css": ""}, root_file="site/index.html")
    with pytest.raises(ProtectedPath):
        nested.delete("site")


def test_list_sorts_folders_first() -> None:
    root = _tree().list()
    assert [(n.type, n.name) for n in root.children] == [
        ("folder", "docs"),
        ("folder", "styles"),
        ("file", "index.html"),
        ("file", "about.html"),
    ]
    assert [n.path for n in root.walk() if n.type == "file"][:3] == [
        "docs/guide/b.txt",
        "docs/guide/c.txt",
        "docs/a.txt",
    ]


def test_write_refuses_folder_paths() -> None:
    tree = _tree()
    with pytest.raises(FolderCollision):
        tree.write("docs", "x")
    change = tree.write_many({"new/page.html": "p", "about.html": "changed"})
    assert change.persist == {"new/page.html": "p", "about.html": "changed"}


def test_list_puts_root_file_first_among_files() -> None:
    tree = FileTree({"about.html": "", "contact.html": "", "home.html": "", "assets/a.png": ""}, root_file="home.html")
    assert [n.name for n in tree.list().children] == ["assets", "home.html", "about.html", "contact.html"]
