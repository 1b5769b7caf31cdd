"""Page shells, stylesheet and site export helpers."""

from __future__ import annotations

import base64
import binascii
import html
import logging
import mimetypes
import re
import unicodedata
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import markdown
from bs4 import BeautifulSoup
from jinja2 import DictLoader, Environment, select_autoescape

from .models import Site

logger = logging.getLogger(__name__)

STYLESHEET_PATH = "styles/style.css"
LEGAL_PAGES = {
    "terms": "terms.html",
    "privacy": "privacy.html",
    "responsible-gaming": "responsible-gaming.html",
}
GAME_PAGE = "game.html"
DEFAULT_IMAGE_URL = "https://images.unsplash.com/photo-1521737604893-d14cc237f11d?auto=format&fit=crop&w=1280&q=80"

INDEX_TEMPLATE = """\
<!DOCTYPE html>
<html lang="{{ lang }}" class="scroll-smooth">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{ title }}</title>
  {% if description %}<meta name="description" content="{{ description }}">{% endif %}
  <script src="https://cdn.tailwindcss.com"></script>
  <link href="https://fonts.googleapis.com/css2?family={{ font | urlencode }}:wght@400;700&display=swap" rel="stylesheet">
  <link rel="stylesheet" href="{{ stylesheet }}">
</head>
<body class="bg-slate-900 text-gray-200 font-sans">
  <header id="header" class="bg-slate-900/80 backdrop-blur-sm fixed top-0 left-0 right-0 z-40">
    <div class="max-w-7xl mx-auto px-4 sm:px-6 lg:px-8 flex items-center justify-between h-16">
      <a href="index.html" class="text-white font-bold text-xl tracking-tight">{{ title }}</a>
      <nav>
        {% for item in nav %}<a href="#{{ item.anchor }}" class="nav-link">{{ item.label }}</a>
        {% endfor %}{% if game_page %}<a href="{{ game_page }}" class="nav-link">Play Demo</a>{% endif %}
      </nav>
    </div>
  </header>
  <main class="pt-16">
{{ content | safe }}
  </main>
  <footer class="bg-slate-800">
    <div class="max-w-7xl mx-auto py-8 px-4 text-center text-gray-400">
      {% if legal %}<div class="flex justify-center gap-4 mb-4">
        {% for page in legal %}<a href="{{ page.filename }}" class="text-sm hover:text-indigo-400">{{ page.title }}</a>
        {% endfor %}
      </div>{% endif %}
      <p class="text-sm">&copy; {{ year }} {{ title }}. All rights reserved.</p>
      {% if game_page %}<p class="text-xs mt-4">This is a social gaming platform for an adult audience (18+) for amusement only. The games offer no real money gambling and no chance to win real money or prizes.</p>{% endif %}
    </div>
  </footer>
</body>
</html>
"""

LEGAL_TEMPLATE = """\
<!DOCTYPE html>
<html lang="{{ lang }}">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{ page_title }} - {{ title }}</title>
  {% if description %}<meta name="description" content="{{ description }}">{% endif %}
  <script src="https://cdn.tailwindcss.com"></script>
  <link rel="stylesheet" href="{{ stylesheet }}">
</head>
<body class="bg-slate-900 text-gray-300 font-sans">
  <main class="max-w-4xl mx-auto px-4 py-16">
    <a href="index.html" class="text-indigo-400 hover:underline">&larr; {{ title }}</a>
    <h1 class="text-4xl font-bold text-white mt-6 mb-8">{{ page_title }}</h1>
{{ content | safe }}
  </main>
</body>
</html>
"""

GAME_TEMPLATE = """\
<!DOCTYPE html>
<html lang="{{ lang }}">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{ page_title }} - {{ title }}</title>
  {% if description %}<meta name="description" content="{{ description }}">{% endif %}
  <script src="https://cdn.tailwindcss.com"></script>
  <link rel="stylesheet" href="https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.5.2/css/all.min.css">
  <link rel="stylesheet" href="{{ stylesheet }}">
</head>
<body class="bg-slate-900 text-gray-200 font-sans flex flex-col min-h-screen">
  <main class="flex-grow flex flex-col items-center justify-center p-4">
    <a href="index.html" class="self-start text-indigo-400 hover:underline">&larr; {{ title }}</a>
    <h1 class="text-3xl md:text-5xl font-bold text-center text-white mb-6">{{ page_title }}</h1>
    {% if game_src %}<div class="w-full max-w-5xl aspect-video bg-black rounded-lg shadow-2xl overflow-hidden border-2 border-slate-700">
      <iframe src="{{ game_src }}" class="w-full h-full" title="{{ page_title }}"></iframe>
    </div>{% endif %}
    <div class="mt-8 w-full max-w-5xl">
{{ disclaimer | safe }}
    </div>
  </main>
</body>
</html>
"""

STYLE_CSS = """\
body.overflow-hidden { overflow: hidden; }

.nav-link {
  display: inline-flex;
  align-items: center;
  padding: 0.45rem 0.8rem;
  border-radius: 9999px;
  font-size: 0.85rem;
  color: rgba(226, 232, 240, 0.82);
  transition: all 0.25s ease;
}
.nav-link:hover {
  color: #ffffff;
  background-color: rgba(148, 163, 184, 0.2);
}

.reveal-on-scroll { opacity: 1; transition: opacity 0.6s ease, transform 0.6s ease; }

[data-fallback="true"] { outline: 1px dashed rgba(239, 68, 68, 0.6); }
"""


def _jinja_env() -> Environment:
    return Environment(
        loader=DictLoader(
            {"index.html.j2": INDEX_TEMPLATE, "legal.html.j2": LEGAL_TEMPLATE, "game.html.j2": GAME_TEMPLATE}
        ),
        autoescape=select_autoescape(["html", "xml", "j2"]),
    )


def slugify_domain(name: str, max_length: int = 50) -> str:
    """Turn a site name into a domain label: ``"Café Luna!"`` -> ``"cafe-luna"``."""
    text = unicodedata.normalize("NFKD", name or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].strip("-") or "site"


def build_nav(sections_html: str) -> List[Dict[str, str]]:
    """Anchors for the top-level sections that carry an id."""
    soup = BeautifulSoup(sections_html or "", "html.parser")
    nav: List[Dict[str, str]] = []
    for section in soup.find_all("section"):
        anchor = section.get("id")
        if not anchor or section.find_parent("section") is not None:
            continue
        heading = section.find(["h1", "h2", "h3"])
        label = heading.get_text(" ", strip=True) if heading else ""
        nav.append({"anchor": anchor, "label": label or anchor.replace("-", " ").title()})
    return nav


def render_index(
    title: str,
    sections_html: str,
    *,
    description: str = "",
    font: str = "Inter",
    legal_pages: Iterable[Tuple[str, str]] = (),
    game_page: Optional[str] = None,
    lang: str = "en",
) -> str:
    template = _jinja_env().get_template("index.html.j2")
    return template.render(
        title=title,
        description=description,
        font=font,
        content=sections_html,
        nav=build_nav(sections_html),
        legal=[{"filename": f, "title": t} for f, t in legal_pages],
        game_page=game_page,
        stylesheet=STYLESHEET_PATH,
        year=date.today().year,
        lang=lang,
    )


def render_legal_page(title: str, page_title: str, content_html: str, *, description: str = "", lang: str = "en") -> str:
    template = _jinja_env().get_template("legal.html.j2")
    return template.render(
        title=title,
        page_title=page_title,
        description=description,
        content=content_html,
        stylesheet=STYLESHEET_PATH,
        lang=lang,
    )


def render_game_page(
    title: str,
    page_title: str,
    disclaimer_html: str,
    *,
    game_src: Optional[str] = None,
    description: str = "",
    lang: str = "en",
) -> str:
    template = _jinja_env().get_template("game.html.j2")
    return template.render(
        title=title,
        page_title=page_title,
        disclaimer=disclaimer_html,
        game_src=game_src,
        description=description,
        stylesheet=STYLESHEET_PATH,
        lang=lang,
    )


_EXTERNAL_URL_RE = re.compile(r"^(?:https?:)?//", re.IGNORECASE)
_BACKGROUND_URL_RE = re.compile(
    r"""background(?:-image)?\s*:\s*url\((['"]?)(?!https?:|data:|//)([^'")]+)\1\)""", re.IGNORECASE
)
_IMAGE_FIT = "object-fit:cover;width:100%;height:100%;"


def _needs_replacement(src: str) -> bool:
    return not src or src == "#" or not (_EXTERNAL_URL_RE.match(src) or src.startswith("data:"))


def patch_section_images(section_html: str, image_url: Optional[str] = None) -> str:
    """Point local or empty image references of a generated section at ``image_url``.

    Generated markup often refers to images that do not exist in the site.
    ``<img>`` sources and inline ``background-image`` urls that are not
    absolute or data URLs are replaced, and every image is made lazy,
    given an ``alt`` text and sized to cover its box.
    """
    if not section_html:
        return section_html
    replacement = image_url or DEFAULT_IMAGE_URL
    patched = _BACKGROUND_URL_RE.sub(lambda _m: f"background-image:url('{replacement}')", section_html)

    soup = BeautifulSoup(patched, "html.parser")
    images = soup.find_all("img")
    if not images:
        return patched
    for img in images:
        if _needs_replacement((img.get("src") or "").strip()):
            img["src"] = replacement
        img.attrs.setdefault("loading", "lazy")
        img.attrs.setdefault("alt", "Illustration")
        classes = img.get("class") or []
        if "object-cover" not in classes:
            img["class"] = [*classes, "object-cover"]
        style = (img.get("style") or "").strip()
        if "object-fit" not in style:
            separator = "" if not style or style.endswith(";") else ";"
            img["style"] = f"{style}{separator}{_IMAGE_FIT}"
    return str(soup)


def render_policy_html(sections: Iterable[dict]) -> str:
    """Render policy sections whose ``content`` is markdown."""
    parts = []
    for index, section in enumerate(sections, start=1):
        if not isinstance(section, dict):
            continue
        anchor = re.sub(r"[^a-z0-9-]+", "-", str(section.get("id") or f"section-{index}").lower()).strip("-")
        body = markdown.markdown(str(section.get("content") or ""))
        heading = html.escape(str(section.get("title") or ""))
        parts.append(
            f'<section id="{anchor}"><h2 class="text-3xl font-bold text-white mt-12 mb-4">{heading}</h2>\n{body}\n</section>'
        )
    return "\n".join(parts)


def encode_file_payload(data: bytes, path: str) -> str:
    """Binary content travels through the file map as a data URL."""
    mime = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return f"data:{mime};base64," + base64.b64encode(data).decode("ascii")


_DATA_URL_RE = re.compile(r"^data:([\w.+-]+/[\w.+-]+)?(;[^,]*)?;base64,", re.IGNORECASE)


def decode_file_payload(content: str) -> Union[str, bytes]:
    """Return raw bytes for a base64 data URL, otherwise ``content`` unchanged."""
    match = _DATA_URL_RE.match(content or "")
    if not match:
        return content
    try:
        return base64.b64decode(content[match.end():].encode("ascii"), validate=True)
    except (binascii.Error, ValueError):
        logger.warning("invalid base64 payload left as text")
        return content


def export_site(site: Site, output_dir: str | Path, files: Optional[Dict[str, str]] = None) -> List[Path]:
    """Write every file of ``site`` below ``output_dir``."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for rel_path, content in sorted((files if files is not None else site.files).items()):
        if rel_path.rsplit("/", 1)[-1] == ".placeholder":
            (output_dir / rel_path).parent.mkdir(parents=True, exist_ok=True)
            continue
        if ".." in rel_path.split("/"):
            logger.warning("skipping unsafe path %s", rel_path)
            continue
        dest = output_dir / rel_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        payload = decode_file_payload(content)
        if isinstance(payload, bytes):
            dest.write_bytes(payload)
        else:
            dest.write_text(payload, encoding="utf-8")
        written.append(dest)
    logger.info("Exported %d file(s) of %s to %s", len(written), site.domain, output_dir)
    return written
