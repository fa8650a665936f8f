"""
robots.txt and sitemaps.
"""
from __future__ import annotations

import pytest

from factories import api_client, make_category, make_course


pytestmark = pytest.mark.anyio


async def test_robots_txt(monkeypatch):
    monkeypatch.setenv("SITE_BASE_URL", "https://hope.edu.np/")
    async with api_client() as client:
        resp = await client.get("/robots.txt")
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "public, max-age=3600"
    lines = resp.text.splitlines()
    assert "Disallow: /admin/" in lines
    assert "Disallow: /api/" in lines
    assert "Sitemap: https://hope.edu.np/sitemap.xml" in lines
    assert "User-agent: AhrefsBot" in lines


async def test_sitemap_lists_pages_courses_and_categories(monkeypatch):
    monkeypatch.setenv("SITE_BASE_URL", "https://hope.edu.np")
    tech = make_category("Information Technology")
    make_course(title="Web Development", category_id=tech.id, image_url="/uploads/1-web.png")
    async with api_client() as client:
        resp = await client.get("/sitemap.xml")
        courses_only = await client.get("/sitemap-courses.xml")
        categories_only = await client.get("/sitemap-categories.xml")

    assert resp.headers["content-type"].startswith("application/xml")
    assert "<loc>https://hope.edu.np/</loc>" in resp.text
    assert "<loc>https://hope.edu.np/courses/web-development</loc>" in resp.text
    assert "<image:loc>https://hope.edu.np/uploads/1-web.png</image:loc>" in resp.text
    assert "<loc>https://hope.edu.np/courses?category=Information%20Technology</loc>" in resp.text

    assert courses_only.text.count("<url>") == 1
    assert categories_only.text.count("<url>") == 1
    assert "xmlns:image" not in categories_only.text
