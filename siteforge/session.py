"""Live editing session over a generated site.

The session owns the file tree, the revision history and the pending
write batch of one site, and exposes what a preview UI needs: the current
snapshot, the folder tree, the path being shown, and per-path revisions.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set

from .ai.flows import failure_message
from .ai.wrapper import RemoteCallWrapper
from .core.errors import ConfigurationError, EditInProgress, FileTreeError, GenerationError, ProtectedPath
from .core.generator import STYLESHEET_PATH
from .core.models import ElementReference, GenerationResult, GenerationTask, Revision, Site
from .core.storage import ChangeBatch, SiteStore
from .filetree import PLACEHOLDER, FileTree, TreeChange, TreeNode, normalize_path
from .patcher import find_element, patch
from .revisions import DEFAULT_LIMIT, RevisionTracker, unified_diff

logger = logging.getLogger(__name__)


@dataclass
class EditOutcome:
    reasoning: str = ""
    answer: str = ""
    changed: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    fallback: bool = False


class SiteSession:
    def __init__(
        self,
        site: Site,
        wrapper: Optional[RemoteCallWrapper] = None,
        *,
        revision_limit: int = DEFAULT_LIMIT,
        root_file: str = "index.html",
        model: Optional[str] = None,
    ) -> None:
        self.site = site
        self.wrapper = wrapper
        self.model = model
        self._tree = FileTree(site.files, root_file=root_file)
        self.site.files = self._tree.snapshot()
        self._revisions = RevisionTracker(limit=revision_limit)
        self._batch = ChangeBatch()
        self._in_flight: Set[str] = set()
        self.current_path = self._tree.root_file

    @classmethod
    def from_store(cls, store: SiteStore, site_id: str, wrapper: Optional[RemoteCallWrapper] = None, **kwargs) -> "SiteSession":
        return cls(Site(domain=site_id, files=store.load_files(site_id)), wrapper, **kwargs)

    # ---------------------------------------------------- rendering surface --
    @property
    def root_file(self) -> str:
        return self._tree.root_file

    @property
    def pending(self) -> ChangeBatch:
        return self._batch

    def snapshot(self) -> Dict[str, str]:
        return self._tree.snapshot()

    def tree(self) -> TreeNode:
        return self._tree.list()

    def read(self, path: str) -> str:
        return self._tree.read(path)

    def open(self, path: str) -> str:
        content = self._tree.read(path)
        self.current_path = normalize_path(path)
        return content

    def revisions(self, path: str) -> List[Revision]:
        return self._revisions.history(normalize_path(path))

    def view_diff(self, path: str, index: int = -1) -> str:
        key = normalize_path(path)
        return unified_diff(self._revisions.view(key, index), key)

    # ------------------------------------------------------- file operations --
    def _apply(self, change: TreeChange) -> TreeChange:
        self._batch.add(change)
        self.site.files = self._tree.snapshot()
        return change

    def create_file(self, path: str, content: str = "") -> str:
        change = self._apply(self._tree.create(path, content))
        return next(iter(change.persist))

    def create_folder(self, path: str) -> str:
        change = self._apply(self._tree.create_folder(path))
        return next(iter(change.persist)).rsplit("/", 1)[0]

    def write(self, path: str, content: str) -> Optional[Revision]:
        """Commit new content for ``path`` and record it as a revision."""
        before = self._tree.get(path)
        if before == content:
            return None
        change = self._apply(self._tree.write(path, content))
        key = next(iter(change.persist))
        return self._revisions.push(key, before or "", content)

    def rename(self, path: str, new_name: str) -> str:
        return self._relocated(path, self._tree.rename(path, new_name))

    def move(self, path: str, destination_folder: str) -> str:
        return self._relocated(path, self._tree.move(path, destination_folder))

    def _relocated(self, path: str, change: TreeChange) -> str:
        self._apply(change)
        for old, new in change.moved.items():
            self._revisions.rename(old, new)
        moved_current = change.relocate(self.current_path)
        if moved_current:
            self.current_path = moved_current
        return change.relocate(path) or path

    def delete(self, path: str) -> List[str]:
        change = self._apply(self._tree.delete(path))
        for removed in change.delete:
            self._revisions.forget(removed)
        if self.current_path in change.delete or not self._tree.is_file(self.current_path):
            self.current_path = self._tree.root_file
        return change.delete

    def restore(self, path: str) -> str:
        """Put back the content from before the latest revision of ``path``."""
        key = normalize_path(path)
        content = self._revisions.restore(key)
        self._apply(self._tree.write(key, content))
        return content

    def flush(self, store: SiteStore, site_id: Optional[str] = None) -> int:
        return self._batch.flush(store, site_id or self.site.domain)

    # --------------------------------------------------------------- AI edits --
    @contextmanager
    def _editing(self, paths: Iterable[str]) -> Iterator[None]:
        wanted = {normalize_path(p) for p in paths}
        busy = sorted(wanted & self._in_flight)
        if busy:
            raise EditInProgress(busy)
        self._in_flight |= wanted
        try:
            yield
        finally:
            self._in_flight -= wanted

    async def _call(self, kind: str, params: dict) -> GenerationResult:
        if self.wrapper is None:
            raise ConfigurationError("No content service configured for this session")
        result = await self.wrapper.call(GenerationTask(index=0, kind=kind, params=params, model=self.model))
        self.site.usage.add(result.usage)
        return result

    async def edit_code(self, path: str, prompt: str) -> EditOutcome:
        with self._editing([path]):
            code = self._tree.read(path)
            result = await self._call("edit_code", {"file_name": path, "code": code, "prompt": prompt})
            outcome = EditOutcome(reasoning=str(result.content.get("reasoning") or ""), fallback=result.fallback)
            if not result.fallback and self.write(path, str(result.content["code"])) is not None:
                outcome.changed.append(path)
            return outcome

    async def edit_element(self, path: str, ref: ElementReference, prompt: str) -> EditOutcome:
        """Rewrite one element of ``path`` and, if asked for, the shared stylesheet.

        The page and the stylesheet each get their own revision. Raises
        :class:`ElementNotFound` when ``ref`` cannot be resolved and
        :class:`GenerationError` when no new markup could be produced.
        """
        with self._editing([path, STYLESHEET_PATH]):
            document = self._tree.read(path)
            span, _ = find_element(document, ref)
            css = self._tree.get(STYLESHEET_PATH)
            result = await self._call(
                "edit_element",
                {"element_html": document[span.start : span.end], "css": css, "prompt": prompt},
            )
            new_markup = result.content.get("elementHtml")
            if result.fallback or not isinstance(new_markup, str) or not new_markup.strip():
                raise GenerationError(str(result.content.get("reasoning") or failure_message(None)))

            patched = patch(self._tree.read(path), ref, new_markup)
            outcome = EditOutcome(reasoning=str(result.content.get("reasoning") or ""))
            if self.write(path, patched.updated_document) is not None:
                outcome.changed.append(path)
            new_css = result.content.get("css")
            if isinstance(new_css, str) and new_css.strip() and self.write(STYLESHEET_PATH, new_css) is not None:
                outcome.changed.append(STYLESHEET_PATH)
            logger.info("Element edit on %s changed %s", path, ", ".join(outcome.changed) or "nothing")
            return outcome

    def _editable_files(self) -> List[Dict[str, str]]:
        files = []
        for path, content in sorted(self._tree.snapshot().items()):
            if path.rsplit("/", 1)[-1] == PLACEHOLDER or content.startswith("data:"):
                continue
            files.append({"fileName": path, "code": content})
        return files

    async def bulk_edit(self, prompt: str) -> EditOutcome:
        """Let the service answer a question or rewrite any number of files.

        A modification with ``code`` set to ``None`` deletes that file; the
        root file is never deleted.
        """
        files = self._editable_files()
        with self._editing(f["fileName"] for f in files):
            result = await self._call("edit_code_bulk", {"prompt": prompt, "files": files})
            outcome = EditOutcome(
                reasoning=str(result.content.get("reasoning") or ""),
                answer=str(result.content.get("answer") or ""),
                fallback=result.fallback,
            )
            for item in result.content.get("modifications") or []:
                name, code = item["fileName"], item["code"]
                if code is None:
                    if not self._tree.is_file(name):
                        continue
                    try:
                        outcome.deleted.extend(self.delete(name))
                    except ProtectedPath:
                        logger.warning("bulk edit tried to delete %s; kept", name)
                        outcome.skipped.append(name)
                    continue
                try:
                    if self.write(name, code) is not None:
                        outcome.changed.append(normalize_path(name))
                except FileTreeError as exc:
                    logger.warning("bulk edit skipped %s: %s", name, exc)
                    outcome.skipped.append(name)
            return outcome
