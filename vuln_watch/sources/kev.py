"""CISA Known Exploited Vulnerabilities source."""

import logging
import math
from typing import Iterator, List, Optional

import requests

from ..errors import FetchError
from ..models import SEVERITY_CRITICAL, Provider, VulnInfo
from .base import Source

logger = logging.getLogger(__name__)

KEV_URL = "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
KEV_PAGE = "https://www.cisa.gov/known-exploited-vulnerabilities-catalog"


class KevSource(Source):
    """Entries of the KEV catalog, newest dateAdded first."""

    NAME = "kev"

    def __init__(self, url: str = KEV_URL, session: Optional[requests.Session] = None, timeout: int = 30):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", "vuln-watch")
        self._entries: Optional[List[dict]] = None

    def provider_info(self) -> Provider:
        return Provider(name=self.NAME, display_name="CISA KEV", link=KEV_PAGE)

    def _fetch_entries(self) -> List[dict]:
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise FetchError(f"failed to fetch KEV catalog: {e}", self.NAME, self.url) from e

        entries = [v for v in (data.get("vulnerabilities") or []) if v.get("cveID")]
        entries.sort(key=lambda v: (v.get("dateAdded") or "", v["cveID"]), reverse=True)
        return entries

    def get_page_count(self, page_size: int) -> int:
        # One download per pass; parse_page slices this snapshot
        self._entries = self._fetch_entries()
        return math.ceil(len(self._entries) / page_size)

    def parse_page(self, page: int, page_size: int) -> Iterator[VulnInfo]:
        entries = self._entries if self._entries is not None else self._fetch_entries()
        start = (page - 1) * page_size
        for entry in entries[start:start + page_size]:
            yield self._to_vuln(entry)

    def _to_vuln(self, entry: dict) -> VulnInfo:
        cve_id = entry["cveID"].strip().upper()
        tags = ["known-exploited"]
        if (entry.get("knownRansomwareCampaignUse") or "").lower() == "known":
            tags.append("ransomware")

        references = []
        for note in (entry.get("notes") or "").split(";"):
            note = note.strip()
            if note.startswith("http") and note not in references:
                references.append(note)

        product = " ".join(p for p in (entry.get("vendorProject"), entry.get("product")) if p)
        return VulnInfo(
            unique_key=f"{self.NAME}:{cve_id}",
            title=entry.get("vulnerabilityName") or f"{cve_id} {product}".strip(),
            description=entry.get("shortDescription") or "",
            severity=SEVERITY_CRITICAL,
            cve=cve_id,
            disclosure=entry.get("dateAdded") or "",
            solutions=entry.get("requiredAction") or "",
            references=references,
            tags=tags,
            source="CISA KEV",
            creator=self,
        )

    def is_valuable(self, info: VulnInfo) -> bool:
        # Everything in KEV is exploited in the wild
        return True

    def close(self):
        self.session.close()
