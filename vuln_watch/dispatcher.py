"""Decide which detected records are pushed and deliver them."""

import logging
from typing import List, Optional

from .config import AppConfig
from .errors import DeliveryError, FetchError, PersistenceError
from .models import VulnInfo
from .notify import new_raw_vuln_info_message, render_vuln_info
from .references import ReferenceCache, merge_unique
from .storage import Storage

logger = logging.getLogger(__name__)


class Dispatcher:
    """Runs every detected record through the push guards, one at a time.

    Order: valuable? -> reload -> already pushed? -> CVE pushed by another
    source? -> mark pushed -> nuclei references -> send to both sinks.
    A failing guard skips that record only.
    """

    def __init__(self, config: AppConfig, storage: Storage, text_pusher, raw_pusher):
        self.config = config
        self.storage = storage
        self.text_pusher = text_pusher
        self.raw_pusher = raw_pusher

    def dispatch(self, vulns: List[VulnInfo], cache: Optional[ReferenceCache] = None) -> int:
        """Push every record that passes the guards. Returns how many were sent."""
        pushed = 0
        for v in vulns:
            if self.push_one(v, cache):
                pushed += 1
        return pushed

    def _is_valuable(self, v: VulnInfo) -> bool:
        if self.config.no_filter:
            return True
        if v.creator is None:
            logger.warning(f"{v} has no source attached, treat as not valuable")
            return False
        return v.creator.is_valuable(v)

    def push_one(self, v: VulnInfo, cache: Optional[ReferenceCache] = None) -> bool:
        if not self._is_valuable(v):
            logger.info(f"skipped {v} as not valuable")
            return False

        try:
            db_vuln = self.storage.find_by_key(v.unique_key)
        except PersistenceError as e:
            logger.error(f"failed to query {v.unique_key} from db {e}")
            return False
        if db_vuln is None:
            logger.error(f"failed to query {v.unique_key} from db: not found")
            return False

        if db_vuln.pushed:
            logger.info(f"{v} has been pushed, skipped")
            return False

        if v.cve and self.config.enable_cve_filter:
            # Another source already pushed the same CVE. The record stays
            # unpushed so a later tick evaluates it again.
            try:
                others = self.storage.query(cve=v.cve, pushed=True)
            except PersistenceError as e:
                logger.error(f"failed to query {v.unique_key} from db {e}")
                return False
            if others:
                ids = [o.key for o in others]
                logger.info(f"found new cve but other source has already pushed, others: {ids}")
                return False

        try:
            self.storage.set_pushed(v.unique_key)
        except PersistenceError as e:
            logger.error(f"failed to save pushed {v.unique_key} status, {e}")
            return False

        if v.cve and not self.config.no_reference_search and cache is not None:
            self._add_references(v, cache)

        logger.info(f"Pushing {v}")
        try:
            self.text_pusher.send_markdown(v.title, render_vuln_info(v))
        except DeliveryError as e:
            logger.error(f"text-pusher send msg error, {e}")
        try:
            self.raw_pusher.send_raw(new_raw_vuln_info_message(v))
        except DeliveryError as e:
            logger.error(f"raw-pusher send msg error, {e}")
        return True

    def _add_references(self, v: VulnInfo, cache: ReferenceCache):
        try:
            links = cache.find_links(v.cve)
        except FetchError as e:
            logger.warning(f"failed to get nuclei link, {e}")
            links = []
        logger.info(f"{v.cve} found {len(links)} prs from nuclei-templates")
        if not links:
            return
        v.references = merge_unique(v.references, links)
        try:
            self.storage.set_references(v.unique_key, v.references)
        except PersistenceError as e:
            logger.warning(f"failed to save {v.unique_key} references, {e}")
