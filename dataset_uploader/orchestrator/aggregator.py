"""Batch verdicts and the notification reported for them."""
from dataclasses import dataclass

from ..models import BatchResult, Notification

UPLOAD_SUCCESS_MESSAGE = "Files uploaded to storage successfully!"
UPLOAD_ERROR_MESSAGE = "Error uploading files to storage"


@dataclass(frozen=True)
class BatchVerdict:
    """What the session should do once a batch settles."""
    notification: Notification
    should_clear_accumulator: bool
    partial: bool = False


class BatchResultAggregator:
    """
    Reduces per-file outcomes into one verdict.

    Any failure, partial or total, keeps the staged files for a retry and is
    reported with the same generic error. ``BatchVerdict.partial`` and
    ``BatchResult.succeeded_urls`` keep the detail.
    """

    def reduce(self, batch: BatchResult) -> BatchVerdict:
        if batch.all_success:
            return BatchVerdict(
                notification=Notification.success(UPLOAD_SUCCESS_MESSAGE),
                should_clear_accumulator=True,
            )
        return BatchVerdict(
            notification=Notification.error(UPLOAD_ERROR_MESSAGE),
            should_clear_accumulator=False,
            partial=batch.is_partial,
        )
