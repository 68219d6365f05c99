"""RSS feed source."""

import hashlib
import logging
import math
from datetime import datetime, timezone
from typing import Iterator, List, Optional

import feedparser
from dateutil import parser as date_parser

from ..errors import FetchError
from ..models import Provider, VulnInfo
from ..scoring import find_cve, is_valuable, severity_from_text
from .base import Source

logger = logging.getLogger(__name__)


def parse_date(date_str: str) -> datetime:
    """Parse a date string to datetime, handling various formats."""
    try:
        parsed = date_parser.parse(date_str)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Failed to parse date '{date_str}': {e}, using current time")
        return datetime.now(timezone.utc)


class RSSSource(Source):
    """A security news feed, paginated by slicing its entries newest first."""

    def __init__(
        self,
        name: str,
        url: str,
        display_name: Optional[str] = None,
        category: str = "news",
        keywords: Optional[List[str]] = None,
        deny_keywords: Optional[List[str]] = None,
        min_severity: Optional[str] = None,
    ):
        self.name = name
        self.url = url
        self.display_name = display_name or name
        self.category = category
        self.keywords = keywords or []
        self.deny_keywords = deny_keywords or []
        self.min_severity = min_severity
        self._entries: Optional[list] = None

    def provider_info(self) -> Provider:
        return Provider(name=self.name, display_name=self.display_name, link=self.url)

    def _fetch_entries(self) -> list:
        logger.debug(f"Fetching RSS feed: {self.name} from {self.url}")
        try:
            feed = feedparser.parse(self.url)
        except Exception as e:
            raise FetchError(f"failed to fetch feed: {e}", self.name, self.url) from e

        entries = list(getattr(feed, "entries", None) or [])
        if feed.bozo and feed.get("bozo_exception"):
            if not entries:
                raise FetchError(f"failed to parse feed: {feed.bozo_exception}", self.name, self.url)
            logger.warning(f"RSS feed parsing warning for {self.name}: {feed.bozo_exception}")

        oldest = datetime.min.replace(tzinfo=timezone.utc)
        entries.sort(key=lambda e: self._published(e) or oldest, reverse=True)
        return entries

    @staticmethod
    def _published(entry) -> Optional[datetime]:
        published_str = entry.get("published") or entry.get("updated") or entry.get("pubDate") or ""
        if not published_str:
            return None
        return parse_date(published_str)

    def get_page_count(self, page_size: int) -> int:
        # Pages of one pass are cut from this snapshot
        self._entries = self._fetch_entries()
        return math.ceil(len(self._entries) / page_size)

    def parse_page(self, page: int, page_size: int) -> Iterator[VulnInfo]:
        entries = self._entries if self._entries is not None else self._fetch_entries()
        start = (page - 1) * page_size
        for entry in entries[start:start + page_size]:
            item = self._to_vuln(entry)
            if item is not None:
                yield item

    def _to_vuln(self, entry) -> Optional[VulnInfo]:
        title = (entry.get("title") or "Untitled").strip()

        summary = entry.get("summary", "") or entry.get("description", "")
        if not summary and entry.get("content"):
            summary = entry.content[0].get("value", "")
        summary = (summary or "").strip()

        item_url = entry.get("link", "") or entry.get("id", "")
        if not item_url:
            logger.debug(f"Skipping entry without link from {self.name}: {title[:50]}")
            return None

        tags = []
        for tag in entry.get("tags") or []:
            term = (tag.get("term") or "").strip()
            if term and term not in tags:
                tags.append(term)

        published = self._published(entry)
        text = f"{title} {summary}"
        return VulnInfo(
            unique_key=f"{self.name}:{hashlib.sha256(item_url.encode()).hexdigest()}",
            title=title,
            description=summary,
            severity=severity_from_text(text),
            cve=find_cve(text),
            disclosure=published.strftime("%Y-%m-%d") if published else "",
            references=[item_url],
            tags=tags,
            source=self.display_name,
            creator=self,
        )

    def is_valuable(self, info: VulnInfo) -> bool:
        valuable, reason = is_valuable(info, self.keywords, self.deny_keywords, self.min_severity)
        logger.debug(f"{info.title[:50]} valuable={valuable}: {reason}")
        return valuable
