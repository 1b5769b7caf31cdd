"""A generation run: plan the site, generate every section, assemble the pages."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .ai.flows import fallback_section_html
from .ai.wrapper import RemoteCallWrapper
from .core.config import Settings
from .core.generator import (
    GAME_PAGE,
    LEGAL_PAGES,
    STYLE_CSS,
    STYLESHEET_PATH,
    patch_section_images,
    render_game_page,
    render_index,
    render_legal_page,
    render_policy_html,
    slugify_domain,
)
from .core.models import GenerationResult, GenerationTask, Section, Site, SitePlan, TokenUsage
from .filetree import FileTree
from .scheduler import TaskScheduler

logger = logging.getLogger(__name__)


class SiteBuilder:
    def __init__(
        self,
        wrapper: RemoteCallWrapper,
        concurrency: int = 4,
        *,
        model: Optional[str] = None,
        root_file: str = "index.html",
    ) -> None:
        self.wrapper = wrapper
        self.concurrency = concurrency
        self.model = model
        self.root_file = root_file

    @classmethod
    def from_settings(cls, wrapper: RemoteCallWrapper, settings: Settings) -> "SiteBuilder":
        return cls(wrapper, settings.concurrency, model=settings.model, root_file=settings.root_file)

    async def plan(self, prompt: str, website_types: Sequence[str] = (), language: Optional[str] = None) -> GenerationResult:
        task = GenerationTask(
            index=0,
            kind="site_structure",
            params={"prompt": prompt, "website_types": list(website_types), "language": language},
            model=self.model,
        )
        return await self.wrapper.call(task)

    def _section_tasks(
        self,
        plan: SitePlan,
        prompt: str,
        language: Optional[str],
        images: Sequence[Optional[str]],
        site_name: str,
        is_game: bool = False,
    ) -> List[GenerationTask]:
        tasks = []
        for index, (section, image_url) in enumerate(zip(plan.sections, images)):
            if section.type == "privacy":
                kind = "policy"
                params = {
                    "site_name": site_name,
                    "site_description": prompt,
                    "language": "English" if is_game else language,
                }
            else:
                kind = "section_html"
                params = {
                    "section": {"type": section.type, "title": section.title, "details": section.details},
                    "creative_brief": plan.creative_brief,
                    "primary_color": plan.primary_color,
                    "language": language,
                    "site_prompt": prompt,
                    "image_urls": [image_url] if image_url else [],
                }
            tasks.append(GenerationTask(index=index, kind=kind, params=params, model=self.model))
        if is_game:
            tasks.append(
                GenerationTask(index=len(tasks), kind="game_page", params={"site_name": site_name}, model=self.model)
            )
        return tasks

    @staticmethod
    def _assign_images(plan: SitePlan, image_urls: Sequence[str]) -> List[Optional[str]]:
        """One image per content section, cycling through ``image_urls``."""
        images: List[Optional[str]] = []
        used = 0
        for section in plan.sections:
            if section.type in LEGAL_PAGES or not image_urls:
                images.append(None)
                continue
            images.append(image_urls[used % len(image_urls)])
            used += 1
        return images

    async def generate_site(
        self,
        prompt: str,
        site_name: str,
        website_types: Sequence[str] = (),
        history: Sequence[str] = (),
        *,
        language: Optional[str] = None,
        image_urls: Sequence[str] = (),
        game_src: Optional[str] = None,
    ) -> Site:
        """Generate a complete multi-page site for ``prompt``.

        Sections that fail every attempt are rendered as fallback fragments;
        only a request the service rejects outright aborts the run. Sites of
        the ``Game`` type also get a game page embedding ``game_src``.
        """
        is_game = any(str(t).casefold() == "game" for t in website_types)
        logger.info("Planning site %r", site_name)
        plan_result = await self.plan(prompt, website_types, language)
        plan = SitePlan.from_dict(plan_result.content)
        title = str(plan_result.content.get("siteName") or site_name or "Site").strip()
        description = str(plan_result.content.get("metaDescription") or "")

        images = self._assign_images(plan, image_urls)
        tasks = self._section_tasks(plan, prompt, language, images, title, is_game)
        logger.info("Generating %d page part(s) for %r", len(tasks), title)
        report = await TaskScheduler(self.wrapper.call, self.concurrency).run(tasks)

        tree = FileTree(root_file=self.root_file)
        main_html: List[str] = []
        legal: List[Tuple[str, str]] = []
        pages: Dict[str, str] = {}
        for section, image_url, result in zip(plan.sections, images, report.results):
            if section.type in LEGAL_PAGES:
                filename = LEGAL_PAGES[section.type]
                content_html = self._legal_content(section, result)
                pages[filename] = render_legal_page(
                    title, section.title or section.type.title(), content_html, description=description
                )
                legal.append((filename, section.title or section.type.replace("-", " ").title()))
            else:
                main_html.append(patch_section_images(self._section_content(section, result), image_url))

        if is_game:
            game = report.results[-1].content
            pages[GAME_PAGE] = render_game_page(
                title,
                str(game.get("title") or "Play for Fun"),
                str(game.get("disclaimerHtml") or ""),
                game_src=game_src,
                description=description,
            )

        pages[self.root_file] = render_index(
            title,
            "\n\n".join(main_html),
            description=description,
            font=plan.font,
            legal_pages=legal,
            game_page=GAME_PAGE if is_game else None,
        )
        pages[STYLESHEET_PATH] = STYLE_CSS
        tree.write_many(pages)
        logger.info("Merged %d page(s) into the file tree", len(pages))

        usage = TokenUsage().add(plan_result.usage).add(report.usage)
        model = plan_result.model or next(iter(report.models), None)
        return Site(
            domain=slugify_domain(title),
            files=tree.snapshot(),
            history=[*history, prompt],
            types=list(website_types),
            usage=usage,
            model=model,
        )

    @staticmethod
    def _section_content(section: Section, result: GenerationResult) -> str:
        html = result.content.get("htmlContent")
        if not isinstance(html, str) or not html.strip():
            html = fallback_section_html({"type": section.type, "title": section.title, "details": section.details})
        return html

    def _legal_content(self, section: Section, result: GenerationResult) -> str:
        if section.type == "privacy":
            return render_policy_html(result.content.get("sections") or [])
        return self._section_content(section, result)

    async def enhance_prompt(self, prompt: str) -> str:
        result = await self.wrapper.call(
            GenerationTask(index=0, kind="enhance_prompt", params={"prompt": prompt}, model=self.model)
        )
        return str(result.content.get("enhancedPrompt") or prompt)
