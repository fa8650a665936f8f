"""
robots.txt and XML sitemaps.

Behavior:
    - URLs are absolute, built from `SITE_BASE_URL`.
    - Course and category data come from the public API, so unpublished data
      can never leak into a sitemap.
    - Responses are publicly cacheable for an hour.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote
from xml.sax.saxutils import escape
import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response

from ..config import site_base_url
from ..ssr import api_data


seo_router = APIRouter(tags=["SEO"])
logger = logging.getLogger("hope.web.seo")

SITEMAP_CACHE_CONTROL = "public, max-age=3600"
# The public listing caps pageSize at 100; sitemaps walk the pages
SITEMAP_PAGE_SIZE = 100
MAX_SITEMAP_PAGES = 50

STATIC_PAGES = (
    ("/", "daily", "1.0"),
    ("/courses", "weekly", "0.9"),
    ("/aboutus", "monthly", "0.8"),
    ("/contactus", "monthly", "0.7"),
    ("/sign-in", "yearly", "0.3"),
    ("/sign-up", "yearly", "0.3"),
)

PRIVATE_PATHS = ("/admin/", "/users/", "/api/", "/forgot-password", "/reset-password", "/sign-in", "/sign-up")
BLOCKED_BOTS = ("AhrefsBot", "SemrushBot", "MJ12bot", "DotBot", "BLEXBot")


def _now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _url_entry(loc: str, lastmod: str, changefreq: str, priority: str, extra: str = "") -> str:
    return (
        "  <url>\n"
        f"    <loc>{escape(loc)}</loc>\n"
        f"    <lastmod>{escape(lastmod)}</lastmod>\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority}</priority>\n"
        f"{extra}"
        "  </url>\n"
    )


def _urlset(entries: Iterable[str], *, images: bool = False) -> Response:
    namespaces = 'xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"'
    if images:
        namespaces += ' xmlns:image="http://www.google.com/schemas/sitemap-image/1.1"'
    body = f'<?xml version="1.0" encoding="UTF-8"?>\n<urlset {namespaces}>\n{"".join(entries)}</urlset>\n'
    return Response(content=body, media_type="application/xml", headers={"Cache-Control": SITEMAP_CACHE_CONTROL})


async def _all_courses(request: Request) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    page = 1
    while page <= MAX_SITEMAP_PAGES:
        listing = await api_data(
            request, "/api/public/courses", {"page": page, "pageSize": SITEMAP_PAGE_SIZE}, default=None
        )
        if not listing:
            break
        rows = listing.get("data") or []
        out.extend(rows)
        if len(out) >= int(listing.get("total") or 0) or not rows:
            break
        page += 1
    return out


async def _all_categories(request: Request) -> List[Dict[str, Any]]:
    return await api_data(request, "/api/public/categories", default=[]) or []


def _lastmod(row: Dict[str, Any], fallback: str) -> str:
    value: Optional[str] = row.get("updated_at") or row.get("created_at")
    return str(value) if value else fallback


def _course_entry(base: str, course: Dict[str, Any], now: str) -> str:
    image = course.get("image_url")
    extra = ""
    if image:
        image_loc = image if image.startswith("http") else f"{base}{image}"
        extra = (
            "    <image:image>\n"
            f"      <image:loc>{escape(image_loc)}</image:loc>\n"
            f"      <image:title>{escape(str(course.get('title') or ''))}</image:title>\n"
            "    </image:image>\n"
        )
    return _url_entry(
        f"{base}/courses/{quote(str(course.get('slug') or ''))}", _lastmod(course, now), "weekly", "0.8", extra
    )


def _category_entry(base: str, category: Dict[str, Any], now: str) -> str:
    return _url_entry(f"{base}/courses?category={quote(str(category.get('name') or ''))}", now, "weekly", "0.6")


@seo_router.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    base = site_base_url()
    lines = ["User-agent: *", "Allow: /"]
    lines += [f"Disallow: {path}" for path in PRIVATE_PATHS]
    lines.append("")
    for bot in BLOCKED_BOTS:
        lines += [f"User-agent: {bot}", "Disallow: /", ""]
    lines += [
        f"Sitemap: {base}/sitemap.xml",
        f"Sitemap: {base}/sitemap-courses.xml",
        f"Sitemap: {base}/sitemap-categories.xml",
        f"Host: {base}",
    ]
    return PlainTextResponse("\n".join(lines) + "\n", headers={"Cache-Control": SITEMAP_CACHE_CONTROL})


@seo_router.get("/sitemap.xml")
async def sitemap(request: Request):
    """Static pages plus every course and category page."""
    base, now = site_base_url(), _now()
    entries = [_url_entry(f"{base}{path}", now, freq, priority) for path, freq, priority in STATIC_PAGES]
    entries += [_course_entry(base, c, now) for c in await _all_courses(request)]
    entries += [_category_entry(base, c, now) for c in await _all_categories(request)]
    logger.debug("sitemap rendered entries=%s", len(entries))
    return _urlset(entries, images=True)


@seo_router.get("/sitemap-courses.xml")
async def sitemap_courses(request: Request):
    base, now = site_base_url(), _now()
    return _urlset([_course_entry(base, c, now) for c in await _all_courses(request)], images=True)


@seo_router.get("/sitemap-categories.xml")
async def sitemap_categories(request: Request):
    base, now = site_base_url(), _now()
    return _urlset([_category_entry(base, c, now) for c in await _all_categories(request)])
