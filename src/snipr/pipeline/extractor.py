"""
Content Extraction.

Turns a web article URL, an EPUB book or an inline text blob into
readable text prepared for speech.

Steps for a URL:
    1. Fetch with httpx (timeout, redirects followed, size ceiling)
    2. Read metadata: title, byline, excerpt, site name
    3. Prune non-content nodes (scripts, navigation, ads, widgets...)
    4. Pick the content root: <article>, else <main>, else the element
       whose direct paragraphs carry the most text
    5. Collect block text separated by blank lines
    6. Normalize for speech (snipr.utils.text)

An EPUB is read chapter by chapter in spine order; navigation documents
are skipped and each chapter goes through steps 3, 5 and 6.

Example:
    >>> extractor = ContentExtractor()
    >>> article = extractor.extract("https://example.com/post")
    >>> article.title, len(article.clean_text)
"""
from __future__ import annotations

import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import urlparse

import ebooklib
import httpx
from bs4 import BeautifulSoup, Tag
from ebooklib import epub

from snipr.core.config import ExtractorConfig
from snipr.core.errors import ExtractionError
from snipr.core.logging import get_logger, info, verbose
from snipr.utils.text import normalize_for_speech
from snipr.utils.timeit import timeit

_LOG = get_logger("snipr.extractor")

EXCERPT_CHARS = 200
TEXT_TITLE_CHARS = 80

_DROP_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form", "iframe", "svg"]
_BLOCK_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre"]
_ROOT_CANDIDATES = ["div", "section", "td", "body"]
_TEXT_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/plain")

# id / class / role values that mark boilerplate
_NOISE_RE = re.compile(
    r"\b(nav|navbar|navigation|menu|breadcrumbs?|ads?|advert\w*|sponsor\w*|promo\w*|banner|"
    r"cookies?|consent|gdpr|share|sharing|social|comments?|disqus|related|recommended|"
    r"newsletter|subscribe|sidebar|popup|modal|complementary|contentinfo)\b",
    re.IGNORECASE,
)
# Never prune these even if their attributes look like boilerplate
_PROTECTED_TAGS = {"html", "body", "article", "main"}

_WS_RE = re.compile(r"\s+")
_NAV_NAME_RE = re.compile(r"(^|/)(nav|toc)\.x?html?$", re.IGNORECASE)


@dataclass
class ExtractedArticle:
    """
    Readable content of a source.

    Attributes:
        title: Article title (may be empty for untitled pages).
        clean_text: Speech-normalized body text.
        excerpt: Short description for listings.
        byline: Author line, if any.
        site_name: Publishing site, if any.
    """
    title: str
    clean_text: str
    excerpt: str = ""
    byline: str = ""
    site_name: str = ""


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _meta(soup: BeautifulSoup, *, name: Optional[str] = None, prop: Optional[str] = None) -> str:
    if name:
        node = soup.find("meta", attrs={"name": name})
    else:
        node = soup.find("meta", attrs={"property": prop})
    if node is None:
        return ""
    return _clean(str(node.get("content") or ""))


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _is_noise(node: Tag) -> bool:
    if node.name in _PROTECTED_TAGS:
        return False
    if node.name in _DROP_TAGS:
        return True
    values = [node.get("id"), node.get("role"), " ".join(node.get("class") or [])]
    return any(isinstance(v, str) and _NOISE_RE.search(v) for v in values)


def _prune(root: BeautifulSoup | Tag) -> None:
    # Decide first, then decompose: decomposed tags lose their attributes
    doomed = [node for node in root.find_all(True) if _is_noise(node)]
    for node in doomed:
        if not node.decomposed:
            node.decompose()


def _paragraph_score(node: Tag) -> int:
    return sum(len(p.get_text(" ", strip=True)) for p in node.find_all("p", recursive=False))


def _content_root(soup: BeautifulSoup) -> Tag:
    for tag in ("article", "main"):
        node = soup.find(tag)
        if node is not None and node.get_text(strip=True):
            return node

    best: Optional[Tag] = None
    best_score = 0
    for node in soup.find_all(_ROOT_CANDIDATES):
        score = _paragraph_score(node)
        if score > best_score:
            best, best_score = node, score
    return best or soup.body or soup


def _block_text(root: Tag) -> str:
    blocks: List[str] = []
    for node in root.find_all(_BLOCK_TAGS):
        # Innermost blocks only, so nested lists/quotes are not read twice
        if node.find(_BLOCK_TAGS):
            continue
        text = _clean(node.get_text(" ", strip=True))
        if text:
            blocks.append(text)

    if not blocks:
        fallback = _clean(root.get_text(" ", strip=True))
        if fallback:
            blocks.append(fallback)
    return "\n\n".join(blocks)


def _title(soup: BeautifulSoup) -> str:
    og = _meta(soup, prop="og:title")
    if og:
        return og
    if soup.title is not None:
        title = _clean(soup.title.get_text(" ", strip=True))
        if title:
            return title
    h1 = soup.find("h1")
    return _clean(h1.get_text(" ", strip=True)) if h1 is not None else ""


def _byline(soup: BeautifulSoup) -> str:
    author = _meta(soup, name="author")
    if author:
        return author
    node = soup.find(attrs={"rel": "author"}) or soup.select_one(".byline")
    return _clean(node.get_text(" ", strip=True)) if node is not None else ""


def parse_html(html: str) -> ExtractedArticle:
    """
    Reduce an HTML document to an ExtractedArticle.

    Raises:
        ExtractionError: If the document cannot be parsed or has no
            readable body.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as e:
        raise ExtractionError(f"Failed to parse article content: {e}") from e

    title = _title(soup)
    byline = _byline(soup)
    site_name = _meta(soup, prop="og:site_name")
    excerpt = _meta(soup, name="description") or _meta(soup, prop="og:description")

    _prune(soup)
    root = _content_root(soup)
    raw_text = _block_text(root)
    clean_text = normalize_for_speech(raw_text)
    if not clean_text:
        raise ExtractionError("Failed to parse article content: no readable text")

    if not excerpt:
        first_para = raw_text.split("\n\n", 1)[0]
        excerpt = _truncate(first_para, EXCERPT_CHARS)

    return ExtractedArticle(
        title=title,
        clean_text=clean_text,
        excerpt=excerpt,
        byline=byline,
        site_name=site_name,
    )


# =============================================================================
# EPUB books
# =============================================================================

@dataclass
class EpubDocument:
    """
    Readable content of an EPUB book.

    Attributes:
        title: Title from the package metadata (may be empty).
        author: First creator, if any.
        chapters: Block text of each readable chapter, in reading order.
    """
    title: str
    author: str
    chapters: List[str]

    @property
    def text(self) -> str:
        return "\n\n".join(self.chapters)


def _dc(book: epub.EpubBook, name: str) -> str:
    values = book.get_metadata("DC", name)
    return _clean(str(values[0][0])) if values else ""


def _is_nav(item: Any) -> bool:
    if isinstance(item, epub.EpubNav) or "nav" in (getattr(item, "properties", None) or []):
        return True
    return bool(_NAV_NAME_RE.search(item.get_name() or ""))


def _reading_order(book: epub.EpubBook) -> List[Any]:
    items = []
    for entry in book.spine:
        idref = entry[0] if isinstance(entry, tuple) else entry
        item = book.get_item_with_id(idref)
        if item is not None and item.get_type() == ebooklib.ITEM_DOCUMENT:
            items.append(item)
    return items or list(book.get_items_of_type(ebooklib.ITEM_DOCUMENT))


def _read_book(data: bytes) -> epub.EpubBook:
    # ebooklib reads from a path
    with tempfile.TemporaryDirectory(prefix="snipr-epub-") as tmp:
        path = Path(tmp) / "upload.epub"
        path.write_bytes(data)
        try:
            return epub.read_epub(str(path), options={"ignore_ncx": True})
        except Exception as e:
            raise ExtractionError(f"Failed to read EPUB: {e}") from e


def parse_epub(data: bytes) -> EpubDocument:
    """
    Collect the chapter text of an EPUB book.

    Each chapter is pruned and reduced to block text the same way as a
    web page. Chapters with no text (cover pages, image plates) are
    dropped.

    Raises:
        ExtractionError: Not a readable EPUB, or no chapter has text.
    """
    book = _read_book(data)

    chapters: List[str] = []
    for item in _reading_order(book):
        if _is_nav(item):
            continue
        soup = BeautifulSoup(item.get_content(), "html.parser")
        body = soup.body or soup
        _prune(body)
        text = _block_text(body)
        if text:
            chapters.append(text)

    if not chapters:
        raise ExtractionError("No readable text content found in EPUB")

    document = EpubDocument(title=_dc(book, "title"), author=_dc(book, "creator"), chapters=chapters)
    info(_LOG, "epub_parsed", title=document.title, chapters=len(chapters), chars=len(document.text))
    return document


class ContentExtractor:
    """
    Fetches and reduces sources to speech-ready text.

    The httpx client is created lazily unless one is injected (tests pass
    a client with httpx.MockTransport).
    """

    def __init__(self, config: Optional[ExtractorConfig] = None, client: Optional[httpx.Client] = None):
        self._config = config or ExtractorConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._config.timeout_s,
                follow_redirects=True,
                headers={"User-Agent": self._config.user_agent},
            )
        return self._client

    def fetch(self, url: str) -> str:
        """
        Fetch a document and return its decoded body.

        The body is streamed and counted, so an oversized page is
        abandoned at the ceiling instead of being read in full.

        Raises:
            ExtractionError: Bad URL, transport error, non-2xx status, a
                non-text content type, or a body over the size ceiling.
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ExtractionError(f"Unsupported URL: {url}")

        max_bytes = self._config.max_bytes
        body = bytearray()
        try:
            with self._get_client().stream("GET", url) as response:
                response.raise_for_status()
                content_type = response.headers.get("content-type", "").split(";", 1)[0].strip().lower()
                # No header at all is read as text
                if content_type and content_type not in _TEXT_CONTENT_TYPES:
                    raise ExtractionError(
                        f"Unsupported content type: {content_type}",
                        {"url": url, "content_type": content_type},
                    )
                for chunk in response.iter_bytes():
                    body.extend(chunk)
                    if len(body) > max_bytes:
                        raise ExtractionError(
                            "Article too large",
                            {"url": url, "bytes": len(body), "max_bytes": max_bytes},
                        )
                encoding = response.encoding or "utf-8"
        except httpx.HTTPStatusError as e:
            raise ExtractionError(
                f"Failed to fetch article: HTTP {e.response.status_code}",
                {"url": url, "status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Failed to fetch article: {e}", {"url": url}) from e

        return bytes(body).decode(encoding, errors="replace")

    def extract(self, url: str) -> ExtractedArticle:
        """Fetch `url` and reduce it to an ExtractedArticle."""
        with timeit("fetch") as t_fetch:
            html = self.fetch(url)
        verbose(_LOG, "fetched", url=url, chars=len(html), seconds=round(t_fetch.seconds, 4))

        with timeit("parse") as t_parse:
            article = parse_html(html)
        info(
            _LOG, "extracted",
            url=url,
            title=article.title,
            chars=len(article.clean_text),
            seconds=round(t_parse.seconds, 4),
        )
        return article

    def extract_text(self, text: str, title: Optional[str] = None) -> ExtractedArticle:
        """
        Prepare an inline text source.

        The title defaults to the first non-empty line (at most 80 chars).

        Raises:
            ExtractionError: If nothing readable remains after normalization.
        """
        clean_text = normalize_for_speech(text or "")
        if not clean_text:
            raise ExtractionError("No readable text provided")

        if not title:
            first_line = next((ln.strip() for ln in text.splitlines() if ln.strip()), "")
            title = _truncate(_clean(first_line), TEXT_TITLE_CHARS)

        first_para = _clean(text.strip().split("\n\n", 1)[0])
        return ExtractedArticle(
            title=title,
            clean_text=clean_text,
            excerpt=_truncate(first_para, EXCERPT_CHARS),
        )

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
