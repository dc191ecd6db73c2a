"""
Batch delivery of planned updates to the profile-batch-update endpoint.

Deliveries are best-effort: a rejected batch is logged and skipped, and the
run carries on with the next batch.
"""

import json
import time
from typing import Callable, Iterator

import requests

from ..core.errors import BatchDeliveryError
from ..core.models import PlannedUpdate
from ..observability import metrics
from ..observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ENGAGE_URL = "https://api.mixpanel.com/engage"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_PAUSE_SECONDS = 0.3
PREVIEW_ENTRIES = 3


def iter_batches(items: list, size: int) -> Iterator[list]:
    """Yield consecutive slices of at most `size` items, in order."""
    if size <= 0:
        raise ValueError(f"Batch size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ProfileBatchUpdater:
    """
    Sends PlannedUpdates in fixed-size batches with a fixed pause.

    In dry-run mode nothing is sent; the first batch is previewed in the log
    and every batch is counted as delivered.
    """

    def __init__(
        self,
        token: str,
        url: str = DEFAULT_ENGAGE_URL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        pause_seconds: float = DEFAULT_PAUSE_SECONDS,
        dry_run: bool = False,
        timeout: float = 120.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize batch updater.

        Args:
            token: Project write token placed in every entry
            url: Update endpoint
            batch_size: Updates per request
            pause_seconds: Pause after a full-sized live batch
            dry_run: Simulate deliveries without network calls
            timeout: Request timeout in seconds
            session: Optional requests session
            sleep: Sleep function (injectable for tests)
        """
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")

        self.token = token
        self.url = url
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self.dry_run = dry_run
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep
        self.failed_batches: list[BatchDeliveryError] = []

    def build_payload(self, batch: list[PlannedUpdate]) -> list[dict]:
        """Build the wire entries for one batch."""
        return [update.to_engage_entry(self.token) for update in batch]

    def send(self, updates: list[PlannedUpdate]) -> int:
        """
        Deliver updates batch by batch.

        Args:
            updates: Non-empty planned updates

        Returns:
            Number of updates counted as sent (simulated in dry-run mode,
            confirmed by a 2xx response otherwise)
        """
        total = len(updates)
        batches = list(iter_batches(updates, self.batch_size))
        sent = 0
        started = time.monotonic()
        mode = "dry_run" if self.dry_run else "live"
        self.failed_batches = []

        for batch_number, batch in enumerate(batches, start=1):
            payload = self.build_payload(batch)

            if self.dry_run:
                if batch_number == 1:
                    logger.info(
                        f"[DRY_RUN] profile-batch-update preview (size={len(batch)}):\n"
                        + json.dumps(payload[:PREVIEW_ENTRIES], indent=2, default=str)
                    )
                sent += len(batch)
                metrics.increment_counter(metrics.update_batches_total, status="simulated")
                metrics.increment_counter(metrics.updates_sent_total, len(batch), mode=mode)
                self._log_progress(batch_number, sent, total, started, prefix="[DRY_RUN] ")
                continue

            try:
                self._post_batch(batch_number, payload)
            except BatchDeliveryError as e:
                self.failed_batches.append(e)
                metrics.increment_counter(metrics.update_batches_total, status="failure")
                logger.error(
                    str(e),
                    extra={"batch_number": batch_number, "http_status": e.status}
                )
            else:
                sent += len(batch)
                metrics.increment_counter(metrics.update_batches_total, status="success")
                metrics.increment_counter(metrics.updates_sent_total, len(batch), mode=mode)
                self._log_progress(batch_number, sent, total, started)

            is_last = batch_number == len(batches)
            if len(batch) == self.batch_size and not is_last:
                self.sleep(self.pause_seconds)

        return sent

    def _post_batch(self, batch_number: int, payload: list[dict]) -> None:
        response = self.session.post(
            self.url,
            data=json.dumps(payload, default=str),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=self.timeout,
        )
        if not 200 <= response.status_code < 300:
            raise BatchDeliveryError(batch_number, response.status_code, response.text)

    def _log_progress(
        self,
        batch_number: int,
        sent: int,
        total: int,
        started: float,
        prefix: str = "",
    ) -> None:
        pct = (sent / total) * 100 if total else 100.0
        elapsed = time.monotonic() - started
        logger.info(
            f"{prefix}Batch {batch_number} sent: {sent}/{total} ({pct:.1f}%) in {elapsed:.1f}s",
            extra={"batch_number": batch_number, "sent": sent, "total": total}
        )
