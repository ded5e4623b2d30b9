from datetime import datetime
from typing import List, Optional
from xml.sax.saxutils import escape

STATIC_PAGES = [
    ("/", "weekly", 1.0),
    ("/products", "daily", 0.9),
    ("/login", "monthly", 0.7),
    ("/register", "monthly", 0.7),
    ("/privacy", "yearly", 0.5),
    ("/terms", "yearly", 0.5),
]

MAX_PRODUCTS = 50000
XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def _lastmod(doc: dict) -> Optional[str]:
    updated = doc.get("updated_at")
    return updated.strftime("%Y-%m-%d") if isinstance(updated, datetime) else None


class SitemapService:
    def __init__(self, db, base_url: str):
        self.db = db
        self.base_url = base_url.rstrip("/")

    def urls(self) -> List[dict]:
        urls = [{"loc": f"{self.base_url}{path}", "changefreq": freq, "priority": prio}
                for path, freq, prio in STATIC_PAGES]

        for cat in self.db["category"].find({"is_active": True}, {"slug": 1, "updated_at": 1}):
            urls.append({"loc": f"{self.base_url}/categories/{cat['slug']}", "lastmod": _lastmod(cat),
                         "changefreq": "weekly", "priority": 0.8})

        products = self.db["product"].find({"is_active": True}, {"_id": 1, "updated_at": 1}).limit(MAX_PRODUCTS)
        for prod in products:
            urls.append({"loc": f"{self.base_url}/product/{prod['_id']}", "lastmod": _lastmod(prod),
                         "changefreq": "weekly", "priority": 0.8})
        return urls

    def generate(self) -> str:
        return render_sitemap(self.urls())


def render_sitemap(urls: List[dict]) -> str:
    lines = ['<?xml version="1.0" encoding="UTF-8"?>',
             '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">']
    for url in urls:
        lines.append("  <url>")
        lines.append(f"    <loc>{escape(url['loc'], XML_ENTITIES)}</loc>")
        lastmod: Optional[str] = url.get("lastmod")
        if lastmod:
            lines.append(f"    <lastmod>{lastmod}</lastmod>")
        if url.get("changefreq"):
            lines.append(f"    <changefreq>{url['changefreq']}</changefreq>")
        if url.get("priority") is not None:
            lines.append(f"    <priority>{url['priority']}</priority>")
        lines.append("  </url>")
    lines.append("</urlset>")
    return "\n".join(lines)
