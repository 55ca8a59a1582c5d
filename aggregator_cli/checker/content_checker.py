"""Content checker that looks for new items on a source.

Feeds (rss, podcast) are parsed with feedparser and every entry whose link
is not stored yet becomes a Content row. Websites and blogs are compared
against the MD5 hash of the last fetched page; when the page changed, links
that look like articles are followed and their text extracted with
BeautifulSoup.
"""

import calendar
import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import feedparser
import httpx
from bs4 import BeautifulSoup

from aggregator_cli.config import AggregatorConfig, CheckerConfig
from aggregator_cli.database.connection import get_db_session
from aggregator_cli.database.repositories import (
    ContentRepository,
    SourceRecord,
    SourceRepository,
    utcnow,
)

logger = logging.getLogger(__name__)

CONTENT_PATTERNS = [
    re.compile(r"/article/", re.I),
    re.compile(r"/post/", re.I),
    re.compile(r"/blog/", re.I),
    re.compile(r"/news/", re.I),
    re.compile(r"/\d{4}/\d{2}/\d{2}/"),
    re.compile(r"\.html$", re.I),
    re.compile(r"\.php$", re.I),
]

NON_CONTENT_PATTERNS = [
    re.compile(rf"/{segment}/", re.I)
    for segment in (
        "tag", "category", "author", "search", "page",
        "wp-content", "wp-includes", "wp-admin", "feed", "rss",
        "comments", "login", "register", "about", "contact", "privacy", "terms",
    )
]

MAIN_CONTENT_SELECTORS = [
    "article",
    ".post-content",
    ".entry-content",
    ".content",
    ".article-content",
    ".post",
    "main",
    "#content",
    "#main",
]

SUMMARY_LENGTH = 500


@dataclass
class DiscoveredItem:
    """A newly discovered item, as stored in the contents table."""

    url: str
    title: str
    type: str = "article"
    author: Optional[str] = None
    publish_date: Optional[datetime] = None
    summary: Optional[str] = None
    full_text: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "type": self.type,
            "author": self.author,
            "publish_date": self.publish_date.isoformat() if self.publish_date else None,
        }


@dataclass
class CheckOutcome:
    """Result of checking one source."""

    content_found: bool
    new_content: List[DiscoveredItem] = field(default_factory=list)
    message: str = ""

    @classmethod
    def from_items(cls, items: List[DiscoveredItem]) -> "CheckOutcome":
        if items:
            return cls(True, items, f"Found {len(items)} new content items")
        return cls(False, [], "No new content found")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_found": self.content_found,
            "new_content": len(self.new_content),
            "message": self.message,
        }


def derive_content_type(source_type: str, media_type: Optional[str] = None) -> str:
    """Map a source type and an optional media MIME type to a content type."""
    if source_type == "podcast":
        return "podcast"
    if source_type == "academic":
        return "paper"
    if source_type == "social":
        return "social"
    if media_type:
        if media_type.startswith("audio/"):
            return "podcast"
        if media_type.startswith("video/"):
            return "video"
    return "article"


def is_likely_content_link(href: str, base_url: str) -> bool:
    """Check whether a link on a source page probably points at an article."""
    if not href or href.startswith("#") or href.lower().startswith(("javascript:", "mailto:")):
        return False

    url = urljoin(base_url, href)
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False
    if parsed.hostname != urlparse(base_url).hostname:
        return False

    if not any(pattern.search(url) for pattern in CONTENT_PATTERNS):
        return False
    return not any(pattern.search(url) for pattern in NON_CONTENT_PATTERNS)


def extract_main_content(soup: BeautifulSoup) -> str:
    """Extract the readable text of an article page."""
    for selector in MAIN_CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        for tag in element.select("script, style, nav, header, footer, .comments, .sidebar"):
            tag.decompose()
        text = element.get_text(" ", strip=True)
        if text:
            return _normalize_text(text)

    body = soup.body or soup
    for tag in body.select("script, style, nav, header, footer"):
        tag.decompose()
    return _normalize_text(body.get_text(" ", strip=True))


def _normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _summarize(text: str) -> str:
    if len(text) > SUMMARY_LENGTH:
        return text[:SUMMARY_LENGTH] + "..."
    return text


def _parse_date(value: Any) -> Optional[datetime]:
    """Parse a feed or HTML date into a naive UTC datetime."""
    if not value:
        return None
    if hasattr(value, "tm_year"):
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return None


def _entry_media_type(entry: Any) -> Optional[str]:
    for enclosure in entry.get("enclosures") or []:
        if enclosure.get("type"):
            return enclosure["type"]
    for media in entry.get("media_content") or []:
        if media.get("type"):
            return media["type"]
    return None


class ContentChecker:
    """Checks sources for new content and stores what it finds.

    Example:
        checker = ContentChecker(config.checker)
        outcome = await checker.check_source(source)
        if outcome.content_found:
            print(outcome.message)
    """

    def __init__(
        self,
        config: Optional[CheckerConfig] = None,
        db_config: Optional[AggregatorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the checker.

        Args:
            config: Checker settings (user agent, timeouts, link limit)
            db_config: Configuration used to open database sessions
            transport: Optional httpx transport, used by tests
        """
        self.config = config or CheckerConfig()
        self._db_config = db_config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": self.config.user_agent},
            timeout=self.config.request_timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    async def check_source(self, source: SourceRecord) -> CheckOutcome:
        """Check a source for new content.

        Args:
            source: Source to check

        Returns:
            Outcome with the newly stored items

        Raises:
            httpx.HTTPError: If the source itself cannot be fetched
        """
        logger.info(f"Checking source: {source.name} ({source.id})")

        if source.type in ("rss", "podcast"):
            items = await self.check_feed(source)
        elif source.type in ("website", "blog"):
            items = await self.check_website(source)
        elif source.type in ("academic", "social"):
            logger.info(f"{source.type.capitalize()} source checking not implemented for {source.id}")
            items = []
        elif source.type == "newsletter":
            logger.info(f"Newsletter sources not yet supported: {source.id}")
            items = []
        else:
            logger.warning(f"Unsupported source type: {source.type} for source {source.id}")
            items = []

        outcome = CheckOutcome.from_items(items)
        logger.info(f"{outcome.message} for source {source.id}")
        return outcome

    async def check_feed(self, source: SourceRecord) -> List[DiscoveredItem]:
        """Store feed entries not seen before."""
        url = source.rss_url or source.url
        logger.info(f"Checking feed: {url}")

        async with self._client() as client:
            response = await client.get(url)
            response.raise_for_status()

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise ValueError(f"Could not parse feed {url}: {parsed.bozo_exception}")

        feed_title = parsed.feed.get("title")
        items: List[DiscoveredItem] = []
        seen = set()

        for entry in parsed.entries:
            link = entry.get("link") or entry.get("id")
            if not link or link in seen or self._is_known(source.id, link):
                continue
            seen.add(link)

            categories = [tag.get("term") for tag in entry.get("tags") or [] if tag.get("term")]
            full_text = None
            if entry.get("content"):
                full_text = entry["content"][0].get("value")

            items.append(
                DiscoveredItem(
                    url=link,
                    title=entry.get("title") or "Untitled",
                    type=derive_content_type(source.type, _entry_media_type(entry)),
                    author=entry.get("author") or feed_title,
                    publish_date=_parse_date(
                        entry.get("published_parsed") or entry.get("published")
                    ) or utcnow(),
                    summary=entry.get("summary") or entry.get("description"),
                    full_text=full_text or entry.get("description"),
                    categories=categories or list(source.categories),
                    topics=list(source.tags),
                )
            )

        self._store(source.id, items)
        return items

    async def check_website(self, source: SourceRecord) -> List[DiscoveredItem]:
        """Follow new article links when the source page changed."""
        logger.info(f"Checking website: {source.url}")

        async with self._client() as client:
            response = await client.get(source.url)
            response.raise_for_status()

            content_hash = hashlib.md5(response.content).hexdigest()
            if source.metadata.get("contentHash") == content_hash:
                logger.info(f"No changes detected for website {source.id}")
                return []

            metadata = dict(source.metadata)
            metadata["contentHash"] = content_hash
            metadata["lastCheckedContent"] = utcnow().isoformat()
            with get_db_session(self._db_config) as session:
                SourceRepository(session).update_metadata(source.id, metadata)

            links = self._content_links(response.text, str(response.url))
            items: List[DiscoveredItem] = []
            for url in links:
                if self._is_known(source.id, url):
                    continue
                try:
                    items.append(await self._fetch_article(client, source, url))
                except (httpx.HTTPError, ValueError) as e:
                    logger.error(f"Error fetching content from {url}: {e}")

        self._store(source.id, items)
        return items

    def _content_links(self, html: str, base_url: str) -> List[str]:
        soup = BeautifulSoup(html, "html.parser")
        links: List[str] = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not is_likely_content_link(href, base_url):
                continue
            url = urldefrag(urljoin(base_url, href))[0]
            if url not in links:
                links.append(url)
            if len(links) >= self.config.max_links_per_page:
                break
        return links

    async def _fetch_article(
        self,
        client: httpx.AsyncClient,
        source: SourceRecord,
        url: str,
    ) -> DiscoveredItem:
        response = await client.get(url)
        response.raise_for_status()
        soup = BeautifulSoup(response.text, "html.parser")

        title = soup.title.get_text(strip=True) if soup.title else ""
        if not title and soup.h1:
            title = soup.h1.get_text(strip=True)

        author_meta = soup.find("meta", attrs={"name": "author"})
        author = author_meta.get("content") if author_meta else None
        if not author:
            author_tag = soup.select_one(".author, [rel=author]")
            author = author_tag.get_text(strip=True) if author_tag else None

        date_meta = soup.find("meta", attrs={"property": "article:published_time"})
        raw_date = date_meta.get("content") if date_meta else None
        if not raw_date:
            time_tag = soup.find("time", attrs={"datetime": True})
            raw_date = time_tag["datetime"] if time_tag else None

        text = extract_main_content(soup)
        return DiscoveredItem(
            url=url,
            title=title or "Untitled",
            type="article",
            author=author or "Unknown",
            publish_date=_parse_date(raw_date) or utcnow(),
            summary=_summarize(text),
            full_text=text,
            categories=list(source.categories),
            topics=list(source.tags),
        )

    def _is_known(self, source_id: str, url: str) -> bool:
        with get_db_session(self._db_config) as session:
            return ContentRepository(session).exists(source_id, url)

    def _store(self, source_id: str, items: List[DiscoveredItem]) -> None:
        if not items:
            return
        with get_db_session(self._db_config) as session:
            repo = ContentRepository(session)
            for item in items:
                repo.create(
                    source_id=source_id,
                    url=item.url,
                    title=item.title,
                    author=item.author,
                    publish_date=item.publish_date,
                    type=item.type,
                    summary=item.summary,
                    full_text=item.full_text,
                    categories=item.categories,
                    topics=item.topics,
                )
                logger.info(f"Created new content: {item.title}")
