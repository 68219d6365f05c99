"""Look up nuclei-templates pull requests that mention a CVE."""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import requests

from .errors import FetchError

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
NUCLEI_OWNER = "projectdiscovery"
NUCLEI_REPO = "nuclei-templates"


@dataclass
class PullRequest:
    title: str
    body: str
    url: str


class GithubClient:
    """Minimal GitHub REST client for listing pull requests."""

    def __init__(self, token: Optional[str] = None, base_url: str = GITHUB_API, timeout: int = 5):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers["Accept"] = "application/vnd.github+json"
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def list_pull_requests(
        self, owner: str, repo: str, state: str = "all", page: int = 1, per_page: int = 100
    ) -> List[PullRequest]:
        """
        List one page of pull requests, most recently created first.

        Raises:
            FetchError: on any network or API failure
        """
        url = f"{self.base_url}/repos/{owner}/{repo}/pulls"
        params = {"state": state, "page": page, "per_page": per_page}
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise FetchError(f"failed to list pull requests of {owner}/{repo}: {e}", url=url) from e

        return [
            PullRequest(
                title=pr.get("title") or "",
                body=pr.get("body") or "",
                url=pr.get("html_url") or "",
            )
            for pr in data
        ]

    def close(self):
        self.session.close()


class ReferenceCache:
    """Pull requests of one repository, fetched at most once per tick.

    A new cache is created for every tick. A failed fetch is not remembered,
    so the next lookup in the same tick tries again.
    """

    def __init__(self, client: GithubClient, owner: str = NUCLEI_OWNER, repo: str = NUCLEI_REPO):
        self.client = client
        self.owner = owner
        self.repo = repo
        self._prs: Optional[List[PullRequest]] = None

    @property
    def loaded(self) -> bool:
        return self._prs is not None

    def find_links(self, cve_id: str) -> List[str]:
        """
        Return the URLs of pull requests whose title or body mention cve_id.

        Raises:
            FetchError: if the pull requests could not be listed
        """
        if self._prs is None:
            self._prs = self.client.list_pull_requests(self.owner, self.repo, state="all", page=1, per_page=100)

        pattern = re.compile(rf"\b{re.escape(cve_id)}\b")
        links = []
        for pr in self._prs:
            if pattern.search(pr.title) or pattern.search(pr.body):
                links.append(pr.url)
        return links


def merge_unique(first: List[str], second: List[str]) -> List[str]:
    """Union of two lists, keeping first-seen order."""
    merged = []
    seen = set()
    for value in list(first) + list(second):
        if value not in seen:
            seen.add(value)
            merged.append(value)
    return merged
