from typing import Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urldefrag, urlparse

from bs4 import BeautifulSoup


# Extensions that denote a crawlable page; "" covers directories and bare paths.
PAGE_EXTENSIONS = frozenset({"", "html", "htm", "php", "asp", "aspx", "jsp"})

NON_CONTENT_TAGS = ("script", "style", "noscript", "template")


class UrlTools:
    @staticmethod
    def canonical(url: str) -> str:
        """Drop the fragment, lower-case the host and give an empty path a slash."""
        url, _ = urldefrag(url)
        parsed = urlparse(url)
        return parsed._replace(netloc=parsed.netloc.lower(), path=parsed.path or "/").geturl()

    @staticmethod
    def normalize_start(urls: Iterable[str]) -> List[str]:
        normalized: List[str] = []
        for u in urls:
            u = (u or "").strip()
            if not u:
                continue
            parsed = urlparse(u)
            if not parsed.scheme:
                u = "https://" + u
            normalized.append(UrlTools.canonical(u))
        return normalized

    @staticmethod
    def normalize_link(base_url: str, href: str) -> Optional[str]:
        if not href:
            return None
        href = href.strip()
        if href.startswith(("mailto:", "javascript:", "tel:", "#")):
            return None
        try:
            absolute = UrlTools.canonical(urljoin(base_url, href))
            if urlparse(absolute).scheme not in ("http", "https"):
                return None
        except ValueError:
            # malformed netloc, e.g. an unterminated IPv6 literal
            return None
        return absolute

    @staticmethod
    def is_allowed_domain(url: str, allowed_domains: List[str]) -> bool:
        if not allowed_domains:
            return True
        try:
            host = (urlparse(url).hostname or "").lower()
        except ValueError:
            return False
        return any(host == d or host.endswith("." + d) for d in allowed_domains)

    @staticmethod
    def extension(url: str) -> str:
        """Lower-cased extension of the last path segment, ignoring query and fragment."""
        path = urlparse(url).path
        if not path or path.endswith("/"):
            return ""
        segment = path.rsplit("/", 1)[-1]
        if "." not in segment:
            return ""
        return segment.rsplit(".", 1)[-1].lower()

    @staticmethod
    def is_blacklisted(url: str) -> bool:
        return UrlTools.extension(url) not in PAGE_EXTENSIONS


class Extractor:
    @staticmethod
    def extract(url: str, html: str) -> Tuple[str, List[str], List[str]]:
        """Return ``(title, texts, links)`` for an HTML page.

        ``texts`` holds the visible text fragments of the body in document
        order; ``links`` holds absolute, fragment-free http(s) links.
        """
        soup = BeautifulSoup(html, "html.parser")
        title_el = soup.find("title")
        title = title_el.get_text(strip=True) if title_el else ""
        if title_el:
            title_el.decompose()
        for tag in soup.find_all(NON_CONTENT_TAGS):
            tag.decompose()
        root = soup.body or soup
        texts = list(root.stripped_strings)
        links: List[str] = []
        for a in soup.find_all("a", href=True):
            normalized = UrlTools.normalize_link(url, a["href"])
            if normalized:
                links.append(normalized)
        return title, texts, links
