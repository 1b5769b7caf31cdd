"""Find one element inside an HTML document and replace only its source span."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Callable, Dict, List, Optional, Tuple, Union

from .core.errors import ElementNotFound
from .core.models import ElementReference

VOID_ELEMENTS = {
    "area",
    "base",
    "br",
    "col",
    "embed",
    "hr",
    "img",
    "input",
    "link",
    "meta",
    "source",
    "track",
    "wbr",
}

# Start tags that close an open <p>.
_PARAGRAPH_CLOSERS = {
    "address", "article", "aside", "blockquote", "details", "dialog", "div", "dl",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4",
    "h5", "h6", "header", "hgroup", "hr", "main", "menu", "nav", "ol", "p", "pre",
    "section", "table", "ul",
}
_TABLE_PARTS = {"thead", "tbody", "tfoot", "tr", "td", "th", "p"}
# Open elements each start tag closes when their end tag was omitted.
_IMPLIED_END = {
    "li": {"li", "p"},
    "dt": {"dt", "dd", "p"},
    "dd": {"dt", "dd", "p"},
    "option": {"option"},
    "optgroup": {"option", "optgroup"},
    "tr": {"tr", "td", "th", "p"},
    "td": {"td", "th", "p"},
    "th": {"td", "th", "p"},
    "thead": _TABLE_PARTS,
    "tbody": _TABLE_PARTS,
    "tfoot": _TABLE_PARTS,
}

_NTH_RE = re.compile(r":nth-of-type\((\d+)\)$")
_ID_RE = re.compile(r"#([A-Za-z0-9_-]+)$")


@dataclass(frozen=True)
class PathSegment:
    tag_name: str
    id: Optional[str] = None
    nth: Optional[int] = None


@dataclass(frozen=True)
class ById:
    tag_name: str
    element_id: str


@dataclass(frozen=True)
class ByStructuralPath:
    segments: Tuple[PathSegment, ...]


@dataclass(frozen=True)
class ByLiteralMatch:
    markup: str


Locator = Union[ById, ByStructuralPath, ByLiteralMatch]


@dataclass(frozen=True)
class Span:
    start: int
    end: int


@dataclass
class PatchResult:
    updated_document: str
    original_markup: str
    span: Span
    locator: Locator


def parse_structural_path(path: str) -> List[PathSegment]:
    """Parse ``"section#hero > div:nth-of-type(2) > h2"`` into segments."""
    segments: List[PathSegment] = []
    for raw in path.split(">"):
        segment = raw.strip()
        if not segment:
            continue
        nth: Optional[int] = None
        nth_match = _NTH_RE.search(segment)
        if nth_match:
            nth = int(nth_match.group(1))
            segment = segment[: nth_match.start()]
        element_id: Optional[str] = None
        id_match = _ID_RE.search(segment)
        if id_match:
            element_id = id_match.group(1)
            segment = segment[: id_match.start()]
        segments.append(PathSegment(tag_name=segment.lower(), id=element_id, nth=nth))
    return segments


def build_locators(ref: ElementReference) -> List[Locator]:
    """Locators for ``ref`` in the order they are tried."""
    locators: List[Locator] = []
    if ref.tag_name and ref.id:
        locators.append(ById(ref.tag_name.lower(), ref.id))
    if ref.structural_path:
        segments = parse_structural_path(ref.structural_path)
        if segments:
            locators.append(ByStructuralPath(tuple(segments)))
    if ref.literal_markup:
        locators.append(ByLiteralMatch(ref.literal_markup))
    return locators


# ------------------------------------------------------------------ by id --


def _locate_by_id(document: str, locator: ById) -> Optional[Span]:
    tag = re.escape(locator.tag_name)
    opening = re.compile(
        rf"<{tag}(?=[\s/>])[^>]*?(?<![\w-])id\s*=\s*([\"']){re.escape(locator.element_id)}\1[^>]*>",
        re.IGNORECASE,
    )
    match = opening.search(document)
    if not match:
        return None
    if locator.tag_name in VOID_ELEMENTS or match.group(0).endswith("/>"):
        return Span(match.start(), match.end())
    if locator.tag_name in _IMPLIED_END or locator.tag_name == "p":
        node = _parse_tree(document).find(
            lambda n: n.tag == locator.tag_name and n.attrs.get("id") == locator.element_id
        )
        return Span(node.start, node.end) if node is not None else None

    tokens = re.compile(rf"<(/?){tag}(?=[\s/>])[^>]*>", re.IGNORECASE)
    depth = 1
    for token in tokens.finditer(document, match.end()):
        if token.group(1):
            depth -= 1
            if depth == 0:
                return Span(match.start(), token.end())
        elif not token.group(0).endswith("/>"):
            depth += 1
    return None


# ------------------------------------------------------- by structural path --


@dataclass
class _Node:
    tag: str
    attrs: Dict[str, Optional[str]]
    start: int
    end: int
    children: List["_Node"] = field(default_factory=list)

    def find(self, predicate: Callable[["_Node"], bool]) -> Optional["_Node"]:
        pending = list(self.children)
        while pending:
            node = pending.pop(0)
            if predicate(node):
                return node
            pending.extend(node.children)
        return None


class _SpanParser(HTMLParser):
    """Builds an element tree that remembers each element's source offsets."""

    def __init__(self, source: str) -> None:
        super().__init__(convert_charrefs=True)
        self.source = source
        self._line_starts = [0]
        for index, char in enumerate(source):
            if char == "\n":
                self._line_starts.append(index + 1)
        self.root = _Node("#document", {}, 0, len(source))
        self._stack: List[_Node] = [self.root]

    def _offset(self) -> int:
        line, column = self.getpos()
        return self._line_starts[line - 1] + column

    def _add(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> _Node:
        start = self._offset()
        raw = self.get_starttag_text() or ""
        node = _Node(tag, dict(attrs), start, start + len(raw))
        self._stack[-1].children.append(node)
        return node

    def _close_implied(self, tag: str) -> None:
        closes = _IMPLIED_END.get(tag, set())
        if tag in _PARAGRAPH_CLOSERS:
            closes = closes | {"p"}
        start = self._offset()
        while len(self._stack) > 1 and self._stack[-1].tag in closes:
            self._stack.pop().end = start

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        self._close_implied(tag)
        node = self._add(tag, attrs)
        if tag not in VOID_ELEMENTS:
            self._stack.append(node)

    def handle_startendtag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        self._close_implied(tag)
        self._add(tag, attrs)

    def handle_endtag(self, tag: str) -> None:
        start = self._offset()
        close = self.source.find(">", start)
        end = close + 1 if close != -1 else len(self.source)
        for depth in range(len(self._stack) - 1, 0, -1):
            if self._stack[depth].tag == tag:
                for unclosed in self._stack[depth + 1 :]:
                    unclosed.end = start
                self._stack[depth].end = end
                del self._stack[depth:]
                return

    def close(self) -> None:
        super().close()
        for unclosed in self._stack[1:]:
            unclosed.end = len(self.source)
        del self._stack[1:]


def _parse_tree(document: str) -> _Node:
    parser = _SpanParser(document)
    parser.feed(document)
    parser.close()
    return parser.root


def _descend(start: _Node, segments: Tuple[PathSegment, ...]) -> Optional[_Node]:
    current = start
    for segment in segments:
        matches = [child for child in current.children if child.tag == segment.tag_name]
        if not matches:
            return None
        chosen: Optional[_Node] = None
        if segment.id:
            chosen = next((c for c in matches if c.attrs.get("id") == segment.id), None)
        if chosen is None:
            if segment.nth and segment.nth > 0:
                if segment.nth > len(matches):
                    return None
                chosen = matches[segment.nth - 1]
            else:
                chosen = matches[0]
        current = chosen
    return current


def _locate_by_path(document: str, locator: ByStructuralPath) -> Optional[Span]:
    root = _parse_tree(document)
    body = root.find(lambda n: n.tag == "body") or root
    target = _descend(body, locator.segments)
    first = locator.segments[0]
    if target is None and first.id:
        # Paths recorded in the browser stop at the nearest ancestor with an id.
        anchor = root.find(lambda n: n.tag == first.tag_name and n.attrs.get("id") == first.id)
        if anchor is not None:
            target = _descend(anchor, locator.segments[1:])
    if target is None or target is root:
        return None
    return Span(target.start, target.end)


# ------------------------------------------------------------ by literal --


def _locate_literal(document: str, locator: ByLiteralMatch) -> Optional[Span]:
    index = document.find(locator.markup)
    if index == -1:
        return None
    return Span(index, index + len(locator.markup))


_RESOLVERS: Dict[type, Callable[[str, Locator], Optional[Span]]] = {
    ById: _locate_by_id,  # type: ignore[dict-item]
    ByStructuralPath: _locate_by_path,  # type: ignore[dict-item]
    ByLiteralMatch: _locate_literal,  # type: ignore[dict-item]
}


def locate(document: str, locator: Locator) -> Optional[Span]:
    return _RESOLVERS[type(locator)](document, locator)


def find_element(document: str, ref: ElementReference) -> Tuple[Span, Locator]:
    for locator in build_locators(ref):
        span = locate(document, locator)
        if span is not None:
            return span, locator
    raise ElementNotFound(_describe(ref))


def patch(document: str, ref: ElementReference, new_markup: str) -> PatchResult:
    """Replace the element described by ``ref`` with ``new_markup``.

    Everything outside the located span is kept byte for byte. Raises
    :class:`ElementNotFound` rather than guessing when nothing matches.
    """
    span, locator = find_element(document, ref)
    return PatchResult(
        updated_document=document[: span.start] + new_markup + document[span.end :],
        original_markup=document[span.start : span.end],
        span=span,
        locator=locator,
    )


def _describe(ref: ElementReference) -> str:
    parts = []
    if ref.tag_name:
        parts.append(f"<{ref.tag_name}>")
    if ref.id:
        parts.append(f"#{ref.id}")
    if ref.structural_path:
        parts.append(f"path '{ref.structural_path}'")
    if ref.literal_markup:
        parts.append("the selected markup")
    target = " ".join(parts) or "an empty reference"
    return f"Could not find {target} in the document."
