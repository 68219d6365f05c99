"""Bootstrap seeding and per-tick update collection."""

import logging
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from .detector import create_or_update
from .errors import ConfigurationError, PersistenceError
from .models import VulnInfo
from .sources.base import Source
from .storage import Storage

logger = logging.getLogger(__name__)

# Never read more than this many pages of a source in one pass
MAX_PAGE_BASE = 3
INIT_PAGE_SIZE = 100
UPDATE_PAGE_SIZE = 10


class CancelScope:
    """Cancellation token shared by one group of tasks.

    Cancelling the scope does not touch the parent event, but a set parent
    cancels the scope.
    """

    def __init__(self, parent: Optional[threading.Event] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or (self._parent is not None and self._parent.is_set())


def run_group(jobs: List[Callable[[], None]], scope: CancelScope):
    """Run jobs concurrently, one worker per job.

    The first failure cancels the scope and every job not yet started; the
    remaining jobs are expected to watch the scope and return early. The
    first error is re-raised once all jobs are done.
    """
    if not jobs:
        return
    first_error = None
    with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
        futures = [pool.submit(job) for job in jobs]
        for future in as_completed(futures):
            try:
                future.result()
            except CancelledError:
                continue
            except Exception as e:
                if first_error is None:
                    first_error = e
                    scope.cancel()
                    for other in futures:
                        other.cancel()
    if first_error is not None:
        raise first_error


def init_data(storage: Storage, source: Source, scope: CancelScope):
    """Seed the catalog with the first pages of one source, fetched in parallel."""
    provider = source.provider_info()
    total = source.get_page_count(INIT_PAGE_SIZE)
    if total == 0:
        raise ConfigurationError(f"{provider.name} got unexpected zero page", provider.name)
    if total > MAX_PAGE_BASE:
        total = MAX_PAGE_BASE
    logger.info(f"start grab {provider.name}, total page: {total}")

    def grab_page(page: int) -> Callable[[], None]:
        def job():
            if scope.cancelled:
                return
            for data in source.parse_page(page, INIT_PAGE_SIZE):
                if scope.cancelled:
                    return
                if data.creator is None:
                    data.creator = source
                try:
                    create_or_update(storage, provider, data)
                except PersistenceError as e:
                    raise PersistenceError(f"{data}: {e}", provider.name) from e

        return job

    run_group([grab_page(page) for page in range(1, total + 1)], scope)


def bootstrap(storage: Storage, sources: List[Source], stop: Optional[threading.Event] = None) -> int:
    """
    Fill the catalog with a bounded window of every source without notifying.

    Returns:
        Number of records in the catalog afterwards

    Raises:
        ConfigurationError: a source reported zero pages
        FetchError, PersistenceError: the first failure of any source
    """
    scope = CancelScope(stop)
    run_group([lambda source=source: init_data(storage, source, scope) for source in sources], scope)
    logger.info("grabber finished successfully")
    return storage.count()


def collect_update(storage: Storage, sources: List[Source]) -> List[VulnInfo]:
    """
    Walk every source and return the records that are new or changed.

    Pages of a source are read in order and the walk stops at the first page
    without anything notify-worthy, since sources list newest first.
    A started collection always runs to the end; only a task failure cancels
    the other sources.

    Raises:
        FetchError, PersistenceError: the first failure of any source
    """
    scope = CancelScope()
    lock = threading.Lock()
    new_vulns: List[VulnInfo] = []

    def walk(source: Source) -> Callable[[], None]:
        def job():
            provider = source.provider_info()
            page_count = source.get_page_count(UPDATE_PAGE_SIZE)
            if page_count > MAX_PAGE_BASE:
                page_count = MAX_PAGE_BASE
            for page in range(1, page_count + 1):
                if scope.cancelled:
                    return
                has_new_vuln = False
                for data in source.parse_page(page, UPDATE_PAGE_SIZE):
                    if scope.cancelled:
                        return
                    if data.creator is None:
                        data.creator = source
                    _, is_new_vuln = create_or_update(storage, provider, data)
                    if is_new_vuln:
                        logger.info(f"found new vuln: {data}")
                        with lock:
                            new_vulns.append(data)
                        has_new_vuln = True

                # A page with nothing new means the older pages are unchanged too
                if not has_new_vuln:
                    logger.debug(f"{provider.name} page {page} has no update, stop")
                    return

        return job

    run_group([walk(source) for source in sources], scope)
    return new_vulns
