"""Configuration loading."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .models import SEVERITY_HIGH, SEVERITY_LEVELS

VERSION = "0.1.0"

DEFAULT_INTERVAL = 30 * 60
DEFAULT_QUIET_HOURS = (0, 7)

_INTERVAL_RE = re.compile(r"^\s*(?:(\d+)h)?\s*(?:(\d+)m)?\s*(?:(\d+)s)?\s*$")


@dataclass(frozen=True)
class FilterConfig:
    keywords: List[str] = field(default_factory=list)
    deny_keywords: List[str] = field(default_factory=list)
    min_severity: Optional[str] = SEVERITY_HIGH


@dataclass(frozen=True)
class AppConfig:
    """Read-only settings for one vuln-watch process."""

    sources: List[str]
    interval: float = DEFAULT_INTERVAL  # seconds
    no_filter: bool = False
    no_start_message: bool = False
    enable_cve_filter: bool = False
    no_reference_search: bool = False
    version: str = VERSION
    quiet_hours: Optional[Tuple[int, int]] = DEFAULT_QUIET_HOURS  # [start, end) local hours
    db_path: str = "data/vulns.sqlite"
    shutdown_grace: float = 1.0
    dry_run: bool = False
    filters: FilterConfig = field(default_factory=FilterConfig)
    rss_feeds: List[dict] = field(default_factory=list)
    ntfy: dict = field(default_factory=dict)
    webhook: dict = field(default_factory=dict)
    github: dict = field(default_factory=dict)


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file, "r") as f:
        config = yaml.safe_load(f)

    return config or {}


def parse_interval(value) -> float:
    """Parse "30m", "1h30m", "90s" or a bare number of seconds."""
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid interval: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            match = _INTERVAL_RE.match(text)
            if not text or not match or not any(match.groups()):
                raise ConfigurationError(f"invalid interval: {value!r}")
            hours, minutes, secs = (int(g or 0) for g in match.groups())
            seconds = float(hours * 3600 + minutes * 60 + secs)
    if seconds <= 0:
        raise ConfigurationError(f"interval must be positive, got {value!r}")
    return seconds


def format_interval(seconds: float) -> str:
    """Render seconds as e.g. "1h30m" or "45s"."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)


def _parse_quiet_hours(value) -> Optional[Tuple[int, int]]:
    if value is None or value is False:
        return None
    try:
        start, end = (int(v) for v in value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"quiet_hours must be [start, end], got {value!r}")
    for hour in (start, end):
        if not 0 <= hour <= 24:
            raise ConfigurationError(f"quiet hour out of range: {hour}")
    return start, end


def build_config(raw: dict) -> AppConfig:
    """
    Build an AppConfig from the parsed YAML document.

    Raises:
        ConfigurationError: for missing or invalid values
    """
    app = raw.get("app", {}) or {}

    sources = app.get("sources") or []
    if isinstance(sources, str):
        sources = [s for s in sources.split(",") if s.strip()]
    if not sources:
        raise ConfigurationError("no source configured")

    filter_config = raw.get("filters", {}) or {}
    min_severity = filter_config.get("min_severity", SEVERITY_HIGH)
    if min_severity is not None and not isinstance(min_severity, str):
        raise ConfigurationError(f"min_severity must be a severity name, got {min_severity!r}")
    if min_severity and min_severity.lower() not in [s.lower() for s in SEVERITY_LEVELS]:
        raise ConfigurationError(f"unknown min_severity {min_severity!r}, expected one of {SEVERITY_LEVELS}")

    rss_feeds = (raw.get("feeds", {}) or {}).get("rss", []) or []
    if not isinstance(rss_feeds, list):
        raise ConfigurationError(f"feeds.rss must be a list, got {rss_feeds!r}")
    for feed in rss_feeds:
        if not isinstance(feed, dict):
            raise ConfigurationError(f"RSS feed must be a mapping: {feed!r}")
        if not feed.get("name") or not feed.get("url"):
            raise ConfigurationError(f"RSS feed needs a name and url: {feed!r}")

    return AppConfig(
        sources=[str(s).strip() for s in sources],
        interval=parse_interval(app.get("interval", DEFAULT_INTERVAL)),
        no_filter=bool(app.get("no_filter", False)),
        no_start_message=bool(app.get("no_start_message", False)),
        enable_cve_filter=bool(app.get("enable_cve_filter", False)),
        no_reference_search=bool(app.get("no_reference_search", False)),
        version=str(app.get("version", VERSION)),
        quiet_hours=_parse_quiet_hours(app.get("quiet_hours", list(DEFAULT_QUIET_HOURS))),
        db_path=app.get("db_path", "data/vulns.sqlite"),
        shutdown_grace=float(app.get("shutdown_grace", 1.0)),
        filters=FilterConfig(
            keywords=list(filter_config.get("keywords", []) or []),
            deny_keywords=list(filter_config.get("deny_keywords", []) or []),
            min_severity=min_severity,
        ),
        rss_feeds=list(rss_feeds),
        ntfy=raw.get("ntfy", {}) or {},
        webhook=raw.get("webhook", {}) or {},
        github=raw.get("github", {}) or {},
    )
