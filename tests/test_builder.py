from __future__ import annotations

import re

import pytest
from bs4 import BeautifulSoup

from siteforge.builder import SiteBuilder
from siteforge.core.errors import ClientRejected, ServiceOverloaded
from siteforge.core.generator import STYLE_CSS, STYLESHEET_PATH

from conftest import FakeContentService

PLAN = {
    "siteName": "Luna Bakery",
    "metaDescription": "Sourdough in the old town",
    "creativeBrief": "Warm, crusty, golden.",
    "theme": {"primaryColor": "amber-500", "font": "Lora"},
    "sections": [
        {"type": "header", "title": "Top bar"},
        {"type": "hero", "title": "Fresh every morning", "details": "Big photo"},
        {"type": "privacy", "title": "Privacy Policy"},
        {"type": "about", "title": "Our story"},
        {"type": "terms", "title": "Terms"},
    ],
}

POLICY = {"title": "Privacy", "sections": [{"id": "data", "title": "Data", "content": "We keep **nothing**."}]}


def _section_reply(request):
    section_type = re.search(r"Section type: (\S+)", request.prompt).group(1)
    title = re.search(r"Title: (.*)", request.prompt).group(1)
    return {"htmlContent": f'<section id="{section_type}"><h2>{title}</h2></section>'}


@pytest.mark.asyncio
async def test_generate_site_assembles_pages(make_wrapper) -> None:
    service = FakeContentService(
        {"site_structure": [PLAN], "policy": [POLICY]},
        default=_section_reply,
    )
    builder = SiteBuilder(make_wrapper(service), concurrency=2)

    site = await builder.generate_site("a bakery site", "Fallback name", ["Food"], history=["earlier"])

    assert site.domain == "luna-bakery"
    assert sorted(site.files) == ["index.html", "privacy.html", STYLESHEET_PATH, "terms.html"]
    assert site.files[STYLESHEET_PATH] == STYLE_CSS
    assert site.history == ["earlier", "a bakery site"]
    assert site.types == ["Food"]
    assert site.model == "fake-model"
    # plan + hero + privacy + about + terms
    assert site.usage.input_tokens == 50
    assert site.usage.output_tokens == 25

    index = BeautifulSoup(site.files["index.html"], "html.parser")
    assert [s["id"] for s in index.find("main").find_all("section")] == ["hero", "about"]
    assert [a["href"] for a in index.select("header nav a")] == ["#hero", "#about"]
    assert {a["href"] for a in index.select("footer a")} == {"privacy.html", "terms.html"}
    assert "<strong>nothing</strong>" in site.files["privacy.html"]
    assert '<section id="terms">' in site.files["terms.html"]
    assert "Top bar" not in site.files["index.html"]


@pytest.mark.asyncio
async def test_failed_section_is_rendered_as_fallback(make_wrapper) -> None:
    def reply(request):
        if "Section type: about" in request.prompt:
            return ServiceOverloaded("busy")
        return _section_reply(request)

    plan = dict(PLAN, sections=[{"type": "hero", "title": "Hi"}, {"type": "about", "title": "Our <story>"}])
    service = FakeContentService({"site_structure": [plan]}, default=reply)
    site = await SiteBuilder(make_wrapper(service, attempts=2), concurrency=2).generate_site("p", "n")

    about = BeautifulSoup(site.files["index.html"], "html.parser").find("section", id="about")
    assert about["data-fallback"] == "true"
    assert about.find("h2").get_text() == "Our <story>"


@pytest.mark.asyncio
async def test_unusable_plan_falls_back_to_default_sections(make_wrapper) -> None:
    service = FakeContentService({"site_structure": ["no plan today"] * 3}, default=_section_reply)
    site = await SiteBuilder(make_wrapper(service)).generate_site("a gym", "Iron Club")

    assert site.domain == "iron-club"
    ids = [s["id"] for s in BeautifulSoup(site.files["index.html"], "html.parser").find("main").find_all("section")]
    assert ids == ["hero", "features", "about", "contact"]


@pytest.mark.asyncio
async def test_rejected_plan_aborts_the_run(make_wrapper) -> None:
    service = FakeContentService({"site_structure": [ClientRejected("invalid key")]})
    with pytest.raises(ClientRejected):
        await SiteBuilder(make_wrapper(service)).generate_site("p", "n")
    assert service.kinds() == ["site_structure"]


@pytest.mark.asyncio
async def test_enhance_prompt_falls_back_to_the_original(make_wrapper) -> None:
    service = FakeContentService({"enhance_prompt": [{"enhancedPrompt": "A vivid bakery site"}]})
    builder = SiteBuilder(make_wrapper(service))
    assert await builder.enhance_prompt("bakery") == "A vivid bakery site"

    failing = SiteBuilder(make_wrapper(FakeContentService(default=ServiceOverloaded("busy"))))
    assert await failing.enhance_prompt("bakery") == "bakery"


@pytest.mark.asyncio
async def test_game_site_gets_game_page_and_patched_images(make_wrapper) -> None:
    def reply(request):
        section_type = re.search(r"Section type: (\S+)", request.prompt).group(1)
        return {"htmlContent": f'<section id="{section_type}"><img src="img/{section_type}.jpg"></section>'}

    sections = [{"type": "hero", "title": "Hi"}, {"type": "privacy", "title": "Privacy"}, {"type": "about", "title": "Us"}]
    plan = dict(PLAN, sections=sections)
    service = FakeContentService(
        {
            "site_structure": [plan],
            "policy": [POLICY],
            "game_page": [{"title": "Spin for Fun!", "disclaimerHtml": '<div id="age">18+ only</div>'}],
        },
        default=reply,
    )
    site = await SiteBuilder(make_wrapper(service), concurrency=3).generate_site(
        "a social casino",
        "Lucky",
        ["Game"],
        language="Ukrainian",
        image_urls=["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"],
        game_src="games/slots/game.html",
    )

    assert sorted(site.files) == ["game.html", "index.html", "privacy.html", STYLESHEET_PATH]
    game = BeautifulSoup(site.files["game.html"], "html.parser")
    assert game.find("h1").get_text() == "Spin for Fun!"
    assert game.find("iframe")["src"] == "games/slots/game.html"
    assert game.find(id="age").get_text() == "18+ only"

    index = BeautifulSoup(site.files["index.html"], "html.parser")
    assert [img["src"] for img in index.find("main").find_all("img")] == [
        "https://img.example.com/1.jpg",
        "https://img.example.com/2.jpg",
    ]
    assert "game.html" in [a["href"] for a in index.select("header nav a")]
    assert "Language: English" in next(r.prompt for r in service.requests if r.kind == "policy")
    # plan + hero + privacy + about + game page
    assert site.usage.input_tokens == 50


@pytest.mark.asyncio
async def test_game_page_falls_back_without_a_usable_answer(make_wrapper) -> None:
    plan = dict(PLAN, sections=[{"type": "hero", "title": "Hi"}])
    service = FakeContentService({"site_structure": [plan], "game_page": ["not json"]}, default=_section_reply)
    site = await SiteBuilder(make_wrapper(service, attempts=1)).generate_site("casino", "Lucky", ["Game"])

    game = BeautifulSoup(site.files["game.html"], "html.parser")
    assert game.find("h1").get_text() == "Play for Fun"
    assert game.find("iframe") is None
    assert game.find(attrs={"data-fallback": "true"}) is not None
