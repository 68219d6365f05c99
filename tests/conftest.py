"""Shared fakes for vuln-watch tests."""

import dataclasses
from datetime import datetime

import pytest

from vuln_watch.config import AppConfig
from vuln_watch.errors import DeliveryError, FetchError
from vuln_watch.models import SEVERITY_HIGH, Provider, VulnInfo
from vuln_watch.references import PullRequest
from vuln_watch.scheduler import WatchApp
from vuln_watch.sources.base import Source
from vuln_watch.storage import Storage


class FakeSource(Source):
    """In-memory source; pages[i] holds the records of page i + 1."""

    def __init__(self, name, pages=None, page_count=None, valuable=True, fail_pages=(), count_error=None):
        self.name = name
        self.pages = pages or []
        self.page_count = len(self.pages) if page_count is None else page_count
        self.valuable = valuable
        self.fail_pages = set(fail_pages)
        self.count_error = count_error
        self.fetched_pages = []
        self.page_sizes = []
        self.closed = False

    def provider_info(self):
        return Provider(name=self.name, display_name=self.name.upper(), link=f"https://{self.name}.example")

    def get_page_count(self, page_size):
        if self.count_error is not None:
            raise self.count_error
        return self.page_count

    def parse_page(self, page, page_size):
        self.fetched_pages.append(page)
        self.page_sizes.append(page_size)
        if page in self.fail_pages:
            raise FetchError(f"page {page} unavailable", self.name)
        items = self.pages[page - 1] if page <= len(self.pages) else []
        for item in items:
            yield dataclasses.replace(
                item,
                references=list(item.references),
                tags=list(item.tags),
                reason=[],
                creator=self,
            )

    def is_valuable(self, info):
        return self.valuable

    def close(self):
        self.closed = True


class RecordingPusher:
    """Collects everything sent through it; raises DeliveryError when failing."""

    def __init__(self, fail=False):
        self.fail = fail
        self.markdown = []
        self.texts = []
        self.raw = []

    def _check(self):
        if self.fail:
            raise DeliveryError("sink down")

    def send_markdown(self, title, body):
        self._check()
        self.markdown.append((title, body))

    def send_text(self, text):
        self._check()
        self.texts.append(text)

    def send_raw(self, payload):
        self._check()
        self.raw.append(payload)

    @property
    def calls(self):
        return len(self.markdown) + len(self.texts) + len(self.raw)


class FakeGithubClient:
    def __init__(self, prs=None, fail=False):
        self.prs = prs or []
        self.fail = fail
        self.calls = []
        self.closed = False

    def list_pull_requests(self, owner, repo, state="all", page=1, per_page=100):
        self.calls.append((owner, repo, state, page, per_page))
        if self.fail:
            raise FetchError("github unavailable")
        return list(self.prs)

    def close(self):
        self.closed = True


def make_vuln(key, **kwargs):
    fields = dict(
        unique_key=key,
        title=f"Vulnerability {key}",
        description="Something bad",
        severity=SEVERITY_HIGH,
        cve="",
        disclosure="2024-05-01",
        source="fake",
    )
    fields.update(kwargs)
    return VulnInfo(**fields)


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path / "vulns.sqlite"))


@pytest.fixture
def vuln():
    return make_vuln


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def pusher():
    return RecordingPusher


@pytest.fixture
def github():
    return FakeGithubClient


@pytest.fixture
def pull_request():
    return PullRequest


@pytest.fixture
def config():
    def build(**kwargs):
        fields = dict(sources=["fake"], interval=60, quiet_hours=None, shutdown_grace=0)
        fields.update(kwargs)
        return AppConfig(**fields)

    return build


@pytest.fixture
def make_app(storage, config):
    def build(sources, text=None, raw=None, github_client=None, clock=None, **config_kwargs):
        return WatchApp(
            config(**config_kwargs),
            storage,
            sources,
            text if text is not None else RecordingPusher(),
            raw if raw is not None else RecordingPusher(),
            github_client=github_client,
            clock=clock or (lambda: datetime(2024, 5, 1, 12, 0)),
        )

    return build
