"""Reconcile crawled records with the catalog."""

import logging
from typing import Tuple

from .models import (
    REASON_NEW_CREATED,
    REASON_SEVERITY_UPDATED,
    REASON_TAG_UPDATED,
    Provider,
    StoredVuln,
    VulnInfo,
)
from .storage import Storage

logger = logging.getLogger(__name__)


def create_or_update(storage: Storage, source: Provider, data: VulnInfo) -> Tuple[StoredVuln, bool]:
    """
    Store the latest crawl of a record and decide whether it is news.

    A record is notify-worthy when it is new, when its severity changed, or
    when it gained a tag. Existing records are always overwritten with the
    crawled data. The pushed flag is never modified here.

    Returns:
        Tuple of (stored record, notify-worthy)

    Raises:
        PersistenceError: if the catalog could not be read or written
    """
    vuln = storage.find_by_key(data.unique_key)
    if vuln is None:
        data.reason.append(REASON_NEW_CREATED)
        new_vuln = storage.create(data)
        logger.debug(f"vuln {new_vuln.id} created from {new_vuln.key} {source.name}")
        return new_vuln, True

    # A low severity record raised to critical later deserves another look
    as_new_vuln = False
    if data.severity != vuln.severity:
        logger.info(f"{data.title} from {data.source} change severity from {vuln.severity} to {data.severity}")
        data.reason.append(f"{REASON_SEVERITY_UPDATED}: {vuln.severity} => {data.severity}")
        as_new_vuln = True

    for new_tag in data.tags:
        if new_tag not in vuln.tags:
            logger.info(f"{data.title} from {data.source} add new tag {new_tag}")
            data.reason.append(f"{REASON_TAG_UPDATED}: {vuln.tags} => {data.tags}")
            as_new_vuln = True
            break

    updated = storage.update(data.unique_key, data)
    logger.debug(f"vuln {updated.id} updated from {updated.key} {source.name}")
    return updated, as_new_vuln
