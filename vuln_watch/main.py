#!/usr/bin/env python3
"""Main entry point for vuln-watch."""

import argparse
import dataclasses
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Tuple

from .config import AppConfig, build_config, load_config, parse_interval
from .errors import Cancelled, WatchError
from .notify import LogPusher, NtfyPusher, WebhookPusher
from .references import GithubClient
from .scheduler import WatchApp
from .sources.base import build_sources
from .storage import Storage


def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    # requests/urllib3 are noisy at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Let command line flags win over the config file."""
    changes = {}
    if args.interval:
        changes["interval"] = parse_interval(args.interval)
    for flag in ("no_filter", "no_start_message", "enable_cve_filter", "no_reference_search", "dry_run"):
        if getattr(args, flag):
            changes[flag] = True
    return dataclasses.replace(config, **changes) if changes else config


def build_pushers(config: AppConfig) -> Tuple[object, object]:
    """Create the text (markdown) and raw pushers."""
    logger = logging.getLogger(__name__)
    if config.dry_run:
        return LogPusher(), LogPusher()

    ntfy = config.ntfy
    if ntfy.get("topic"):
        text_pusher = NtfyPusher(
            base_url=ntfy.get("base_url", "https://ntfy.sh"),
            topic=ntfy["topic"],
            priority=ntfy.get("priority", "high"),
            headers=ntfy.get("headers"),
        )
    else:
        logger.warning("No ntfy topic configured, text messages are only logged")
        text_pusher = LogPusher()

    webhook = config.webhook
    if webhook.get("url"):
        raw_pusher = WebhookPusher(url=webhook["url"], headers=webhook.get("headers"))
    else:
        logger.warning("No webhook url configured, raw messages are only logged")
        raw_pusher = LogPusher()
    return text_pusher, raw_pusher


def build_app(config: AppConfig) -> WatchApp:
    storage = Storage(config.db_path)
    sources = build_sources(config)
    text_pusher, raw_pusher = build_pushers(config)
    github_client = None
    if not config.no_reference_search:
        github_client = GithubClient(token=config.github.get("token"))
    return WatchApp(config, storage, sources, text_pusher, raw_pusher, github_client=github_client)


def install_signal_handlers(stop: threading.Event):
    """SIGTERM and Ctrl-C both ask the run loop to stop after the current tick."""
    for signum in (signal.SIGTERM, signal.SIGINT):
        signal.signal(signum, lambda signum, frame: stop.set())


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Watch vulnerability feeds and push new findings"
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to config YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Initialize, run one check and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log what would be sent without actually sending",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--interval",
        help="Override check interval, e.g. 30m or 1h",
    )
    parser.add_argument("--no-filter", action="store_true", help="Push every new vuln, not only valuable ones")
    parser.add_argument("--no-start-message", action="store_true", help="Do not send the initialization message")
    parser.add_argument(
        "--enable-cve-filter",
        action="store_true",
        help="Skip a CVE that another source has already pushed",
    )
    parser.add_argument(
        "--no-reference-search",
        action="store_true",
        help="Do not search nuclei-templates pull requests for CVE references",
    )
    parser.add_argument(
        "--log-file",
        help="Path to log file (default: logs/vuln-watch.log)",
    )

    args = parser.parse_args()

    log_file = args.log_file or "logs/vuln-watch.log"
    setup_logging(verbose=args.verbose, log_file=log_file)

    try:
        config = apply_overrides(build_config(load_config(args.config)), args)
        app = build_app(config)
    except FileNotFoundError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)
    except WatchError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)

    stop = threading.Event()
    install_signal_handlers(stop)

    try:
        if args.once:
            app.run_once(stop)
        else:
            app.run(stop)
    except (KeyboardInterrupt, Cancelled):
        logging.info("Interrupted, exiting")
    except WatchError as e:
        logging.error(f"Error during execution: {e}")
        sys.exit(1)
    except Exception as e:
        logging.exception(f"Error during execution: {e}")
        sys.exit(1)
    finally:
        app.close()


if __name__ == "__main__":
    main()
