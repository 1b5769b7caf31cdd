"""Request kinds understood by the remote-call wrapper.

Each kind knows how to render its prompt, which keys a usable answer must
carry, and how to synthesize deterministic fallback content when the
service cannot produce one.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from jinja2 import DictLoader, Environment

from ..core.errors import ParseFailure, RateLimited, ServiceOverloaded

NON_CONTENT_SECTIONS = {"header", "footer", "navigation", "nav"}

PROMPT_TEMPLATES: Dict[str, str] = {
    "site_structure": """You are an art director and website architect. Analyse the user's request and produce a site plan as JSON.

1. Write a detailed creative brief (creativeBrief): mood, colour palette, typography, visual elements.
   The brief is reused when every section is generated.
2. Plan 3-5 content sections (sections). If the user asked for an exact number, follow it.
   Legal pages (terms, privacy, responsible-gaming) may be listed; they become separate pages.

Rules:
- Do NOT produce HTML, only JSON.
- Do NOT include header, footer or navigation sections. Content only: hero, features, about, gallery, faq, cta, contact, ...
- Write in {{ language or "the language of the request" }}.
{% if website_types %}- Site categories: {{ website_types | join(", ") }}.
{% endif %}
Return JSON: {"siteName": str, "metaDescription": str, "creativeBrief": str,
"theme": {"primaryColor": str, "font": str}, "sections": [{"type": str, "title": str, "details": str}]}

User request: "{{ prompt }}"
""",
    "section_html": """You are a senior front-end developer fluent in TailwindCSS. Build the HTML for ONE section of a website.

Creative brief:
"{{ creative_brief }}"

Rules:
- Do not use <html>, <body> or <style> tags. Return the section markup only.
- The root element is <section id="{{ section.type }}">.
{% if section.type == "hero" %}- This is the hero: make it full height (min-h-screen).
{% endif %}- Write all copy in {{ language or "the language of the request" }}.
- No header, nav or footer inside the section.
- Wrap the inner content in <div class="max-w-6xl mx-auto px-4 sm:px-6 lg:px-8">.
- Add the class 'reveal-on-scroll' to elements that should fade in on scroll.
- Primary accent colour: {{ primary_color }}.
{% if image_urls %}Use these images (and only these):
{% for url in image_urls %}- {{ url }}
{% endfor %}{% endif %}
Base the content on the overall request ("{{ site_prompt }}") and the section details.

Section type: {{ section.type }}
Title: {{ section.title }}
Details: {{ section.details }}

Return JSON with a single field htmlContent.
""",
    "policy": """Write the privacy policy for the website "{{ site_name }}".
Website description: {{ site_description }}
Language: {{ language or "English" }}.

Return JSON: {"title": str, "sections": [{"id": str, "title": str, "content": str}]}
where content is markdown. Cover data collection, cookies, usage, sharing, user rights and contact.
""",
    "edit_code": """You are an expert web developer. You receive the content of one file and a change request.
Return the FULL edited file and a short, friendly explanation of what changed.
- Touch only the lines that are necessary; preserve structure, formatting and unrelated content.
- Do not add comments to the code.
- Write the reasoning in the language of the request.

File name: {{ file_name }}
Request: {{ prompt }}
Code to edit:
```
{{ code }}
```

Return JSON: {"code": str, "reasoning": str}
""",
    "edit_element": """You receive the current HTML of a single element and, optionally, the full CSS file of the site.

- Apply the requested change and keep the markup well structured.
- Preserve existing ids, classes and accessibility attributes unless the request says otherwise.
- Do not modify anything outside the element.
- Keep indentation consistent with the input and return the full element markup.
- If shared styles must change, return the COMPLETE updated CSS in "css"; otherwise omit it.

Input HTML:
{{ element_html }}
{% if css %}
Current CSS file:
{{ css }}
{% endif %}
User request:
{{ prompt }}

Return JSON: {"elementHtml": str, "reasoning": str, "css": str (optional)}
""",
    "edit_code_bulk": """You are an expert, friendly web developer.

If the user asks a question, answer it: return JSON {"answer": str}.
If the user gives a command, change the code: return JSON
{"reasoning": str, "modifications": [{"fileName": str, "code": str or null}]}.
- Prefer editing existing files; edit styles/style.css for style changes.
- Always return the complete content of every modified file. Use null to delete a file.
- Leave unaffected files out of "modifications".
- If no change is needed, explain why in "answer".

User request: {{ prompt }}
Project files:
{% for file in files %}
---
File: {{ file.fileName }}
```
{{ file.code }}
```
{% endfor %}
""",
    "game_page": """You are a copywriter and designer for free-to-play social casino sites. Write the content of the game page
for "{{ site_name }}".

1. A bright, catchy page title in English that stresses the game is free, social and played for fun.
2. A striking 18+ disclaimer as an HTML block styled with TailwindCSS classes (gradient background, shadow,
   a Font Awesome icon such as <i class="fa-solid fa-triangle-exclamation"></i>). It must state that the games
   are for adults (18+), offer no real money and exist purely for entertainment.

Return JSON: {"title": str, "disclaimerHtml": str}
""",
    "enhance_prompt": """You are a prompt engineer for a website generator. Rewrite the user's idea into one vivid,
specific paragraph covering visual style, animations, icons and a varied section structure.
Avoid filler text.

User prompt:
"{{ prompt }}"

Return JSON: {"enhancedPrompt": str}
""",
}

_env = Environment(
    loader=DictLoader(PROMPT_TEMPLATES),
    autoescape=False,
    keep_trailing_newline=True,
)

_FALLBACK_SECTION = """<section id="{section_id}" class="py-12 bg-gray-100 dark:bg-gray-800 text-gray-900 dark:text-white" data-fallback="true">
  <div class="max-w-7xl mx-auto px-4 sm:px-6 lg:px-8">
    <h2 class="text-3xl font-bold mb-4">{title}</h2>
{details}    <p class="mt-4 text-red-500">This section could not be generated; fallback content is shown.</p>
  </div>
</section>"""


def render_prompt(kind: str, params: Dict[str, Any]) -> str:
    context = {
        "language": None,
        "website_types": [],
        "image_urls": [],
        "css": None,
        "primary_color": "indigo-500",
        "creative_brief": "",
        "site_prompt": "",
    }
    context.update(params)
    return _env.get_template(kind).render(**context)


def _esc(value: Any) -> str:
    return html.escape(str(value or ""), quote=True)


def fallback_section_html(section: Dict[str, Any]) -> str:
    section_type = str(section.get("type") or "section")
    title = _esc(section.get("title") or section_type or "Section")
    details = section.get("details")
    details_html = f'    <p class="text-slate-500">{_esc(details)}</p>\n' if details else ""
    return _FALLBACK_SECTION.format(section_id=_esc(section_type), title=title, details=details_html)


def _fallback_section(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    return {"htmlContent": fallback_section_html(params.get("section") or {})}


DEFAULT_SECTIONS = (
    ("hero", "Welcome"),
    ("features", "What we offer"),
    ("about", "About us"),
    ("contact", "Get in touch"),
)


def _fallback_structure(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    prompt = str(params.get("prompt") or "").strip()
    return {
        "creativeBrief": prompt,
        "theme": {"primaryColor": "indigo-500", "font": "Inter"},
        "sections": [
            {"type": section_type, "title": title, "details": prompt}
            for section_type, title in DEFAULT_SECTIONS
        ],
    }


def _fallback_policy(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    site_name = str(params.get("site_name") or "this website")
    return {
        "title": "Privacy Policy",
        "sections": [
            {
                "id": "overview",
                "title": "Overview",
                "content": f"This policy explains how {site_name} handles personal data.",
            },
            {
                "id": "contact",
                "title": "Contact",
                "content": "Questions about this policy can be sent through the contact form.",
            },
        ],
    }


def _fallback_edit_code(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    return {"code": params.get("code", ""), "reasoning": failure_message(error)}


def _fallback_edit_element(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    return {"elementHtml": None, "reasoning": failure_message(error)}


def _fallback_bulk(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    return {"answer": failure_message(error), "modifications": []}


GAME_DISCLAIMER_HTML = """<div class="rounded-lg bg-slate-800 border border-amber-500/40 p-4 text-sm text-gray-300" data-fallback="true">
  <p><strong class="text-amber-400">18+</strong> This game is intended for adults only. It offers no real money gambling
  and no prizes; it is played purely for entertainment.</p>
</div>"""


def _fallback_game_page(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    return {"title": "Play for Fun", "disclaimerHtml": GAME_DISCLAIMER_HTML}


def _fallback_enhance(params: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    return {"enhancedPrompt": str(params.get("prompt") or "")}


def failure_message(error: Optional[BaseException]) -> str:
    if isinstance(error, RateLimited):
        return "The AI model is rate limited right now. Please wait a few seconds and try again."
    if isinstance(error, ServiceOverloaded):
        return "The AI model is temporarily overloaded. Please try again shortly."
    if isinstance(error, ParseFailure):
        return "I could not apply changes this time. Please add more detail or try again."
    return "The AI request failed. Please try again."


def _normalize_structure(content: Dict[str, Any]) -> Dict[str, Any]:
    sections = content.get("sections")
    if not isinstance(sections, list) or not sections:
        raise ParseFailure("site plan has no sections")
    content["sections"] = [
        s
        for s in sections
        if isinstance(s, dict) and str(s.get("type") or "").strip().lower() not in NON_CONTENT_SECTIONS
    ]
    if not content["sections"]:
        raise ParseFailure("site plan has only navigation sections")
    return content


def _normalize_bulk(content: Dict[str, Any]) -> Dict[str, Any]:
    modifications = content.get("modifications") or []
    if not isinstance(modifications, list):
        raise ParseFailure("modifications must be a list")
    cleaned = []
    for item in modifications:
        if not isinstance(item, dict) or not isinstance(item.get("fileName"), str):
            raise ParseFailure("each modification needs a fileName")
        code = item.get("code")
        if code is not None and not isinstance(code, str):
            raise ParseFailure(f"code for {item['fileName']} must be a string or null")
        cleaned.append({"fileName": item["fileName"], "code": code})
    content["modifications"] = cleaned
    if not cleaned and not content.get("answer") and not content.get("reasoning"):
        raise ParseFailure("bulk edit returned neither an answer nor modifications")
    return content


@dataclass(frozen=True)
class FlowSpec:
    kind: str
    required: Tuple[str, ...]
    fallback: Callable[[Dict[str, Any], Optional[BaseException]], Dict[str, Any]]
    normalize: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None
    temperature: float = 0.4

    def validate(self, content: Dict[str, Any]) -> Dict[str, Any]:
        for key in self.required:
            value = content.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ParseFailure(f"{self.kind}: output is missing '{key}'")
        if self.normalize is not None:
            content = self.normalize(content)
        return content


FLOWS: Dict[str, FlowSpec] = {
    "site_structure": FlowSpec(
        "site_structure", ("sections",), _fallback_structure, _normalize_structure, temperature=0.7
    ),
    "section_html": FlowSpec("section_html", ("htmlContent",), _fallback_section, temperature=0.7),
    "policy": FlowSpec("policy", ("sections",), _fallback_policy),
    "edit_code": FlowSpec("edit_code", ("code",), _fallback_edit_code, temperature=0.2),
    "edit_element": FlowSpec("edit_element", ("elementHtml",), _fallback_edit_element, temperature=0.2),
    "edit_code_bulk": FlowSpec("edit_code_bulk", (), _fallback_bulk, _normalize_bulk, temperature=0.2),
    "game_page": FlowSpec("game_page", ("title", "disclaimerHtml"), _fallback_game_page, temperature=0.8),
    "enhance_prompt": FlowSpec("enhance_prompt", ("enhancedPrompt",), _fallback_enhance, temperature=0.8),
}


def get_flow(kind: str) -> FlowSpec:
    try:
        return FLOWS[kind]
    except KeyError:
        raise ValueError(f"Unknown generation kind: {kind}") from None
