"""Data models for vulnerability records."""

from dataclasses import dataclass, field
from typing import Any, List, Optional


SEVERITY_LOW = "Low"
SEVERITY_MEDIUM = "Medium"
SEVERITY_HIGH = "High"
SEVERITY_CRITICAL = "Critical"

SEVERITY_LEVELS = [SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_HIGH, SEVERITY_CRITICAL]

REASON_NEW_CREATED = "newly created"
REASON_SEVERITY_UPDATED = "severity changed"
REASON_TAG_UPDATED = "tags changed"


@dataclass
class Provider:
    """Identity of a vulnerability source, used for logs and messages."""

    name: str
    display_name: str
    link: str


@dataclass
class VulnInfo:
    """A vulnerability record as crawled from a source."""

    unique_key: str
    title: str
    description: str = ""
    severity: str = SEVERITY_LOW
    cve: str = ""  # "" means no CVE
    disclosure: str = ""
    solutions: str = ""
    references: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    source: str = ""
    reason: List[str] = field(default_factory=list)
    # The Source that produced this record; not persisted
    creator: Optional[Any] = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return f"{self.title} ({self.source})"


@dataclass
class StoredVuln:
    """A row of the vulnerability catalog."""

    id: int
    key: str
    title: str
    description: str
    severity: str
    cve: str
    disclosure: str
    solutions: str
    references: List[str]
    tags: List[str]
    source: str
    pushed: bool = False
