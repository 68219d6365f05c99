"""Common interface for vulnerability sources."""

import abc
import logging
from typing import Iterator, List

from ..errors import ConfigurationError
from ..models import Provider, VulnInfo

logger = logging.getLogger(__name__)


class Source(abc.ABC):
    """A paginated vulnerability feed.

    Pages are numbered from 1 and ordered newest first, so page 1 always
    holds the most recently disclosed records.
    """

    @abc.abstractmethod
    def provider_info(self) -> Provider:
        """Static identity of this source."""

    @abc.abstractmethod
    def get_page_count(self, page_size: int) -> int:
        """Total number of pages at the given page size.

        Called once at the start of every pass; the parse_page calls that
        follow may reuse what this call fetched.

        Raises:
            FetchError: if the source could not be reached
        """

    @abc.abstractmethod
    def parse_page(self, page: int, page_size: int) -> Iterator[VulnInfo]:
        """Yield the records on one page.

        Raises:
            FetchError: if the page could not be fetched or parsed
        """

    @abc.abstractmethod
    def is_valuable(self, info: VulnInfo) -> bool:
        """Whether a record from this source deserves a notification."""

    def close(self):
        """Release any resources held by the source."""

    def __str__(self):
        return self.provider_info().name


def build_sources(config) -> List[Source]:
    """Create the configured sources, in configured order.

    Raises:
        ConfigurationError: for a source name that matches nothing
    """
    from .kev import KevSource
    from .rss import RSSSource

    feeds = {feed["name"].strip().lower(): feed for feed in config.rss_feeds}
    filters = config.filters

    sources: List[Source] = []
    for part in config.sources:
        name = part.strip().lower()
        if name == KevSource.NAME:
            sources.append(KevSource())
        elif name in feeds:
            feed = feeds[name]
            sources.append(
                RSSSource(
                    name=name,
                    url=feed["url"],
                    display_name=feed.get("display_name", feed["name"]),
                    category=feed.get("category", "news"),
                    keywords=filters.keywords,
                    deny_keywords=filters.deny_keywords,
                    min_severity=filters.min_severity,
                )
            )
        else:
            raise ConfigurationError(f"invalid grab source {part}")
        logger.debug(f"Configured source {name}")
    return sources
