"""The vuln-watch run loop."""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .collector import bootstrap, collect_update
from .config import AppConfig, format_interval
from .dispatcher import Dispatcher
from .errors import Cancelled, DeliveryError, WatchError
from .models import Provider
from .notify import (
    InitialMessage,
    new_raw_initial_message,
    new_raw_text_message,
    render_initial_msg,
)
from .references import GithubClient, ReferenceCache
from .sources.base import Source
from .storage import Storage

logger = logging.getLogger(__name__)

INITIAL_TITLE = "vuln-watch initialized"
SHUTDOWN_MESSAGE = "Notice: vuln-watch process exiting"


class WatchApp:
    """Seeds the catalog, then checks every source once per interval."""

    def __init__(
        self,
        config: AppConfig,
        storage: Storage,
        sources: List[Source],
        text_pusher,
        raw_pusher,
        github_client: Optional[GithubClient] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.storage = storage
        self.sources = sources
        self.text_pusher = text_pusher
        self.raw_pusher = raw_pusher
        self.github_client = github_client
        self.clock = clock
        self.dispatcher = Dispatcher(config, storage, text_pusher, raw_pusher)
        # Pull request cache of the running tick, replaced at every tick
        self.cache: Optional[ReferenceCache] = None

    def providers(self) -> List[Provider]:
        return [s.provider_info() for s in self.sources]

    def bootstrap(self, stop: Optional[threading.Event] = None) -> int:
        """Seed the catalog. Any failure here is fatal."""
        logger.info("initialize local database..")
        count = bootstrap(self.storage, self.sources, stop)
        if stop is not None and stop.is_set():
            raise Cancelled("stopped during initialization")
        logger.info(f"system init finished, local database has {count} vulns")
        return count

    def send_start_message(self, vuln_count: int):
        msg = InitialMessage(
            version=self.config.version,
            vuln_count=vuln_count,
            interval=format_interval(self.config.interval),
            providers=self.providers(),
        )
        self.text_pusher.send_markdown(INITIAL_TITLE, render_initial_msg(msg))
        self.raw_pusher.send_raw(new_raw_initial_message(msg))

    def send_shutdown_message(self):
        """Best effort, failures are only logged."""
        try:
            self.text_pusher.send_text(SHUTDOWN_MESSAGE)
        except DeliveryError as e:
            logger.error(e)
        try:
            self.raw_pusher.send_raw(new_raw_text_message(SHUTDOWN_MESSAGE))
        except DeliveryError as e:
            logger.error(e)
        # give the sinks a moment before the process goes away
        time.sleep(self.config.shutdown_grace)

    def in_quiet_hours(self, now: datetime) -> bool:
        if self.config.quiet_hours is None:
            return False
        start, end = self.config.quiet_hours
        hour = now.hour
        if start <= end:
            return start <= hour < end
        return hour >= start or hour < end

    def _new_reference_cache(self) -> Optional[ReferenceCache]:
        if self.github_client is None:
            return None
        github = self.config.github
        return ReferenceCache(
            self.github_client,
            owner=github.get("owner", "projectdiscovery"),
            repo=github.get("repo", "nuclei-templates"),
        )

    def tick(self, now: Optional[datetime] = None) -> int:
        """Run one collect + dispatch round. Returns the number of records pushed.

        A stop request does not interrupt a tick; the run loop checks it
        between ticks.
        """
        self.cache = self._new_reference_cache()

        now = now or self.clock()
        if self.in_quiet_hours(now):
            logger.info("sleeping..")
            return 0

        try:
            vulns = collect_update(self.storage, self.sources)
        except WatchError as e:
            logger.error(f"failed to get updates, {e}")
            vulns = []
        except Exception as e:
            logger.exception(f"failed to get updates, {e}")
            vulns = []

        logger.info(f"found {len(vulns)} new vulns in this ticking")
        return self.dispatcher.dispatch(vulns, self.cache)

    def run_once(self, stop: Optional[threading.Event] = None) -> int:
        """Seed the catalog and run a single tick, without start or exit messages."""
        self.bootstrap(stop)
        return self.tick()

    def run(self, stop: threading.Event):
        """
        Seed the catalog and tick until stop is set.

        Raises:
            Cancelled: once stop is set
            WatchError: if initialization fails
        """
        count = self.bootstrap(stop)
        if not self.config.no_start_message:
            self.send_start_message(count)

        interval = self.config.interval
        logger.info(f"ticking every {format_interval(interval)}")
        try:
            next_fire = time.monotonic() + interval
            while True:
                wait = max(0.0, next_fire - time.monotonic())
                logger.info(f"next checking at {(datetime.now() + timedelta(seconds=wait)):%Y-%m-%d %H:%M:%S}")
                if stop.wait(wait):
                    raise Cancelled()

                self.tick()

                # Fires missed while ticking are dropped, not replayed
                next_fire += interval
                now = time.monotonic()
                if next_fire <= now:
                    next_fire += ((now - next_fire) // interval + 1) * interval
        finally:
            self.send_shutdown_message()

    def close(self):
        for source in self.sources:
            source.close()
        if self.github_client is not None:
            self.github_client.close()
