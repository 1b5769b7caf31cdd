"""In-memory file tree addressed by slash-delimited paths.

Folders are implicit: a path is a folder when some file lives below it.
Every mutation builds the new mapping first and swaps it in with a single
assignment, so a multi-entry change (folder rename, folder move, folder
delete) is never observable half-applied. Each mutation returns a
:class:`TreeChange` describing what the caller has to persist or delete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Literal, Mapping, Optional, Tuple

from .core.errors import (
    AlreadyExists,
    FolderCollision,
    InvalidMove,
    InvalidPath,
    PathNotFound,
    ProtectedPath,
)

logger = logging.getLogger(__name__)

PLACEHOLDER = ".placeholder"


@dataclass
class TreeChange:
    persist: Dict[str, str] = field(default_factory=dict)
    delete: List[str] = field(default_factory=list)
    moved: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.persist or self.delete or self.moved)

    def relocate(self, path: str) -> Optional[str]:
        """Where ``path`` (file or folder) ended up after this change, if it moved."""
        if path in self.moved:
            return self.moved[path]
        for old, new in self.moved.items():
            if old.startswith(path + "/") and new.endswith(old[len(path):]):
                return new[: len(new) - len(old) + len(path)]
        return None


@dataclass
class TreeNode:
    name: str
    path: str
    type: Literal["file", "folder"]
    children: List["TreeNode"] = field(default_factory=list)

    def walk(self) -> Iterator["TreeNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


def normalize_path(path: str) -> str:
    cleaned = str(path or "").replace("\\", "/").strip()
    parts = [part for part in cleaned.split("/") if part not in ("", ".")]
    if not parts:
        raise InvalidPath("Path must not be empty", path)
    if ".." in parts:
        raise InvalidPath(f"Path must not contain '..': {path}", path)
    return "/".join(parts)


def split_path(path: str) -> Tuple[str, str]:
    parent, _, name = path.rpartition("/")
    return parent, name


def join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def split_extension(name: str) -> Tuple[str, str]:
    dot = name.rfind(".")
    if dot > 0:
        return name[:dot], name[dot:]
    return name, ""


class FileTree:
    def __init__(self, files: Optional[Mapping[str, str]] = None, *, root_file: str = "index.html") -> None:
        self._files: Dict[str, str] = {}
        for path, content in (files or {}).items():
            self._files[normalize_path(path)] = content
        self.root_file = normalize_path(root_file)

    # ------------------------------------------------------------ queries --
    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.exists(path)

    def __len__(self) -> int:
        return len(self._files)

    def paths(self) -> List[str]:
        return sorted(self._files)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._files)

    def is_file(self, path: str) -> bool:
        return normalize_path(path) in self._files

    def is_folder(self, path: str) -> bool:
        prefix = normalize_path(path) + "/"
        return any(key.startswith(prefix) for key in self._files)

    def exists(self, path: str) -> bool:
        return self.is_file(path) or self.is_folder(path)

    def read(self, path: str) -> str:
        key = normalize_path(path)
        try:
            return self._files[key]
        except KeyError:
            raise PathNotFound(f"No such file: {key}", key) from None

    def get(self, path: str, default: Optional[str] = None) -> Optional[str]:
        return self._files.get(normalize_path(path), default)

    def descendants(self, folder: str) -> List[str]:
        prefix = normalize_path(folder) + "/"
        return sorted(key for key in self._files if key.startswith(prefix))

    def unique_path(self, desired: str, *, folder: bool = False) -> str:
        """Return ``desired`` or the first free ``name-N`` variant of it.

        Files get the counter before their extension; folders and
        extensionless names get it at the end.
        """
        desired = normalize_path(desired)
        if not self._occupied(desired):
            return desired
        parent, name = split_path(desired)
        stem, ext = (name, "") if folder else split_extension(name)
        counter = 1
        while True:
            candidate = join_path(parent, f"{stem}-{counter}{ext}")
            if not self._occupied(candidate):
                return candidate
            counter += 1

    def list(self) -> TreeNode:
        root = TreeNode(name="", path="", type="folder")
        folders: Dict[str, TreeNode] = {"": root}
        for full_path in sorted(self._files):
            parts = full_path.split("/")
            parent = root
            current = ""
            for part in parts[:-1]:
                current = join_path(current, part)
                node = folders.get(current)
                if node is None:
                    node = TreeNode(name=part, path=current, type="folder")
                    parent.children.append(node)
                    folders[current] = node
                parent = node
            if parts[-1] != PLACEHOLDER:
                parent.children.append(TreeNode(name=parts[-1], path=full_path, type="file"))
        for node in folders.values():
            node.children.sort(key=lambda n: (n.type != "folder", n.path != self.root_file, n.name.casefold()))
        return root

    # ---------------------------------------------------------- mutations --
    def create(self, path: str, content: str = "") -> TreeChange:
        key = normalize_path(path)
        if key in self._files:
            raise AlreadyExists(f"File exists: {key}", key)
        if self.is_folder(key):
            raise FolderCollision(f"A folder named {key} already exists", key)
        self._check_ancestors(key)
        self._files = {**self._files, key: content}
        logger.debug("created %s", key)
        return TreeChange(persist={key: content})

    def create_folder(self, path: str) -> TreeChange:
        key = normalize_path(path)
        if self.is_folder(key):
            raise FolderCollision(f"Folder exists: {key}", key)
        if key in self._files:
            raise AlreadyExists(f"A file named {key} already exists", key)
        return self.create(join_path(key, PLACEHOLDER), "")

    def write(self, path: str, content: str) -> TreeChange:
        """Create or overwrite a single file."""
        return self.write_many({path: content})

    def write_many(self, updates: Mapping[str, str]) -> TreeChange:
        normalized = {normalize_path(path): content for path, content in updates.items()}
        for key in normalized:
            if self.is_folder(key):
                raise FolderCollision(f"{key} is a folder", key)
            self._check_ancestors(key)
        self._files = {**self._files, **normalized}
        logger.debug("wrote %d file(s)", len(normalized))
        return TreeChange(persist=dict(normalized))

    def rename(self, path: str, new_name: str) -> TreeChange:
        key = normalize_path(path)
        name = str(new_name or "").strip()
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            raise InvalidPath(f"Invalid name: {new_name!r}", new_name)
        parent, old_name = split_path(key)
        if name == old_name:
            self._require(key)
            return TreeChange()
        return self._relocate(key, join_path(parent, name))

    def move(self, path: str, destination_folder: str) -> TreeChange:
        key = normalize_path(path)
        destination = "" if not str(destination_folder or "").strip("/ ") else normalize_path(destination_folder)
        self._require(key)
        if destination and destination in self._files:
            raise InvalidMove(f"Destination {destination} is a file", destination)
        if destination == key or destination.startswith(key + "/"):
            raise InvalidMove(f"Cannot move {key} into itself", key)
        parent, name = split_path(key)
        if parent == destination:
            return TreeChange()
        return self._relocate(key, join_path(destination, name))

    def delete(self, path: str) -> TreeChange:
        key = normalize_path(path)
        if key in self._files:
            if key == self.root_file:
                raise ProtectedPath(f"{key} cannot be deleted", key)
            remaining = dict(self._files)
            del remaining[key]
            self._files = remaining
            logger.debug("deleted %s", key)
            return TreeChange(delete=[key])
        prefix = key + "/"
        doomed = [k for k in self._files if k.startswith(prefix)]
        if not doomed:
            raise PathNotFound(f"No such file or folder: {key}", key)
        if self.root_file.startswith(prefix):
            raise ProtectedPath(f"{key} contains {self.root_file}", key)
        self._files = {k: v for k, v in self._files.items() if not k.startswith(prefix)}
        logger.debug("deleted folder %s (%d entries)", key, len(doomed))
        return TreeChange(delete=sorted(doomed))

    # ------------------------------------------------------------ helpers --
    def _occupied(self, path: str) -> bool:
        return path in self._files or any(k.startswith(path + "/") for k in self._files)

    def _require(self, key: str) -> None:
        if not self._occupied(key):
            raise PathNotFound(f"No such file or folder: {key}", key)

    def _check_ancestors(self, key: str) -> None:
        parent = split_path(key)[0]
        while parent:
            if parent in self._files:
                raise AlreadyExists(f"{parent} is a file, not a folder", parent)
            parent = split_path(parent)[0]

    def _relocate(self, key: str, desired: str) -> TreeChange:
        if key == self.root_file or self.root_file.startswith(key + "/"):
            raise ProtectedPath(f"{self.root_file} cannot be moved or renamed", key)

        if key in self._files:
            self._check_ancestors(desired)
            target = self.unique_path(desired)
            content = self._files[key]
            relocated = {k: v for k, v in self._files.items() if k != key}
            relocated[target] = content
            self._files = relocated
            logger.debug("relocated %s -> %s", key, target)
            return TreeChange(persist={target: content}, delete=[key], moved={key: target})

        prefix = key + "/"
        if not any(k.startswith(prefix) for k in self._files):
            raise PathNotFound(f"No such file or folder: {key}", key)
        if desired == key or desired.startswith(prefix):
            raise InvalidMove(f"Cannot move {key} into itself", key)
        self._check_ancestors(desired)
        target = self.unique_path(desired, folder=True)

        change = TreeChange()
        relocated: Dict[str, str] = {}
        for k, v in self._files.items():
            if k.startswith(prefix):
                new_key = target + "/" + k[len(prefix):]
                relocated[new_key] = v
                change.persist[new_key] = v
                change.delete.append(k)
                change.moved[k] = new_key
            else:
                relocated[k] = v
        self._files = relocated
        logger.debug("relocated folder %s -> %s (%d entries)", key, target, len(change.moved))
        return change
