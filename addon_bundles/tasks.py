import logging
import time

import dramatiq
from datadog import statsd

from .models import Bundle
from .services.bundle_operations import sync_now
from .services.shopify_client import is_transient

logger = logging.getLogger(__name__)

ADDON_BUNDLES_QUEUE = "addon_bundles"


class BundleSyncIncomplete(Exception):
    """A sync pass finished with failed slots or a discount error."""

    def __init__(self, result):
        self.result = result
        report = result.sync_report
        failed = len(report.failed_slots) if report is not None else 0
        super().__init__(
            f"Bundle {result.bundle_id} sync incomplete: {failed} failed slots, "
            f"discount_error={result.discount_error}"
        )


def should_retry(retries_so_far, exception):
    """Return True for transient errors, False for permanent ones.

    Transient (retry): ConnectionError, Timeout, HTTP 5xx, HTTP 429, and an
    incomplete sync pass whose failed legs were themselves transient.
    Permanent (fail):  ValueError, KeyError, HTTP 4xx (except 429),
    ``userErrors``, etc.
    """
    if isinstance(exception, BundleSyncIncomplete):
        return exception.result.retryable
    return is_transient(exception)


@dramatiq.actor(
    queue_name=ADDON_BUNDLES_QUEUE,
    max_retries=5,
    min_backoff=30_000,
    max_backoff=600_000,
    retry_when=should_retry,
)
def sync_bundle_task(bundle_id, trigger="task"):
    """Re-sync a bundle in the background; raises to retry an incomplete pass."""
    tags = [f"trigger:{trigger}"]
    start = time.monotonic()
    try:
        result = sync_now(bundle_id)
    except Bundle.DoesNotExist:
        logger.warning("sync_bundle_task: bundle %s no longer exists", bundle_id)
        statsd.increment("addon_bundles.task.skipped", tags=tags)
        return
    finally:
        statsd.histogram(
            "addon_bundles.task.processing_time_ms",
            int((time.monotonic() - start) * 1000),
            tags=tags,
        )

    report = result.sync_report
    if result.discount_error or (report is not None and not report.ok):
        statsd.increment("addon_bundles.task.failed", tags=tags)
        raise BundleSyncIncomplete(result)
    statsd.increment("addon_bundles.task.processed", tags=tags)
    logger.info("sync_bundle_task: bundle %s synced (trigger=%s)", bundle_id, trigger)
