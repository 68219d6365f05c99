"""Notification sinks and message rendering."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .errors import DeliveryError
from .models import Provider, VulnInfo

logger = logging.getLogger(__name__)

MSG_TYPE_INITIAL = "vuln-watch-initial"
MSG_TYPE_TEXT = "vuln-watch-text"
MSG_TYPE_VULN_INFO = "vuln-watch-vulninfo"


@dataclass
class InitialMessage:
    version: str
    vuln_count: int
    interval: str
    providers: List[Provider] = field(default_factory=list)


def send_ntfy(
    title: str,
    message: str,
    base_url: str,
    topic: str,
    url: Optional[str] = None,
    tags: Optional[List[str]] = None,
    priority: str = "default",
    headers: Optional[dict] = None,
    markdown: bool = False,
):
    """
    Send a notification via ntfy.

    Args:
        title: Notification title
        message: Notification message/body
        base_url: ntfy server base URL (e.g., "https://ntfy.sh")
        topic: ntfy topic name
        url: Optional URL to include in notification
        tags: Optional list of tags
        priority: Priority level (min, low, default, high, urgent)
        headers: Optional additional headers (e.g., for auth)
        markdown: Ask ntfy to render the body as markdown

    Raises:
        DeliveryError: if the ntfy server did not accept the message
    """
    notify_url = f"{base_url.rstrip('/')}/{topic}"

    notify_headers = {}
    if headers:
        notify_headers.update(headers)
    if priority:
        notify_headers["X-Priority"] = priority
    if tags:
        notify_headers["X-Tags"] = ",".join(tags)
    if url:
        notify_headers["X-Click"] = url
    if markdown:
        notify_headers["X-Markdown"] = "yes"

    body = f"{title}\n\n{message}" if title else message
    if url:
        body += f"\n\n{url}"

    try:
        response = requests.post(notify_url, headers=notify_headers, data=body.encode("utf-8"), timeout=10)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise DeliveryError(f"Failed to send ntfy notification: {e}") from e
    logger.info(f"Sent notification: {title[:50]}...")


class NtfyPusher:
    """Formatted sink: markdown messages to an ntfy topic."""

    def __init__(self, base_url: str, topic: str, priority: str = "high", headers: Optional[dict] = None):
        self.base_url = base_url
        self.topic = topic
        self.priority = priority
        self.headers = headers

    def send_markdown(self, title: str, body: str):
        send_ntfy(
            title=f"**{title}**",
            message=body,
            base_url=self.base_url,
            topic=self.topic,
            priority=self.priority,
            headers=self.headers,
            markdown=True,
        )

    def send_text(self, text: str):
        send_ntfy(
            title="",
            message=text,
            base_url=self.base_url,
            topic=self.topic,
            priority=self.priority,
            headers=self.headers,
        )


class WebhookPusher:
    """Raw sink: POSTs structured messages as JSON to a webhook."""

    def __init__(self, url: str, headers: Optional[dict] = None, timeout: int = 15):
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout

    def send_raw(self, payload: Dict[str, Any]):
        try:
            response = requests.post(self.url, headers=self.headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Failed to send webhook message: {e}") from e
        logger.info(f"Sent {payload.get('type')} message to webhook")


class LogPusher:
    """Dry-run sink that only logs what would have been sent."""

    def send_markdown(self, title: str, body: str):
        logger.info(f"[DRY RUN] Would send: {title[:60]}")
        logger.debug(body)

    def send_text(self, text: str):
        logger.info(f"[DRY RUN] Would send text: {text[:60]}")

    def send_raw(self, payload: Dict[str, Any]):
        logger.info(f"[DRY RUN] Would send raw {payload.get('type')} message")


def render_initial_msg(msg: InitialMessage) -> str:
    lines = [
        f"Database initialized, **{msg.vuln_count}** vulnerabilities in the local catalog.",
        "",
        f"- Version: {msg.version}",
        f"- Check interval: {msg.interval}",
        f"- Sources ({len(msg.providers)}):",
    ]
    for p in msg.providers:
        lines.append(f"  - [{p.display_name}]({p.link})")
    return "\n".join(lines)


def render_vuln_info(info: VulnInfo) -> str:
    lines = [
        f"- CVE: {info.cve or 'none'}",
        f"- Severity: {info.severity}",
        f"- Tags: {', '.join(info.tags) if info.tags else 'none'}",
        f"- Disclosure: {info.disclosure or 'unknown'}",
        f"- Source: {info.source}",
    ]
    if info.reason:
        lines += ["", "**Reasons**"]
        lines += [f"- {r}" for r in info.reason]
    if info.description:
        lines += ["", "**Description**", info.description.strip()]
    if info.solutions:
        lines += ["", "**Solutions**", info.solutions.strip()]
    if info.references:
        lines += ["", "**References**"]
        lines += [f"{i}. {ref}" for i, ref in enumerate(info.references, 1)]
    return "\n".join(lines)


def new_raw_initial_message(msg: InitialMessage) -> Dict[str, Any]:
    return {
        "type": MSG_TYPE_INITIAL,
        "content": {
            "version": msg.version,
            "vuln_count": msg.vuln_count,
            "interval": msg.interval,
            "provider": [
                {"name": p.name, "display_name": p.display_name, "link": p.link} for p in msg.providers
            ],
        },
    }


def new_raw_text_message(text: str) -> Dict[str, Any]:
    return {"type": MSG_TYPE_TEXT, "content": {"message": text}}


def new_raw_vuln_info_message(info: VulnInfo) -> Dict[str, Any]:
    return {
        "type": MSG_TYPE_VULN_INFO,
        "content": {
            "unique_key": info.unique_key,
            "title": info.title,
            "description": info.description,
            "severity": info.severity,
            "cve": info.cve,
            "disclosure": info.disclosure,
            "solutions": info.solutions,
            "references": list(info.references),
            "tags": list(info.tags),
            "reason": list(info.reason),
            "source": info.source,
        },
    }
