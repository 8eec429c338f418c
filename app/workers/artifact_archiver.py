"""Archive the PDF of an approved change order to Supabase Storage.

Runs after the approval is committed. Whatever happens here, the change
order stays approved: failures are logged and retried, never rolled back.
"""
import asyncio
from loguru import logger
from app.change_orders.errors import ArtifactPersistFailure
from app.workers.celery_app import celery_app
from app.pdf.change_order_generator import persist_approved_artifact

TASK_NAME = "app.workers.artifact_archiver.archive_approved_change_order"


def _run_async(coro):
    """Run async code from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    name=TASK_NAME,
    bind=True,
    max_retries=3,
    default_retry_delay=30,
)
def archive_approved_change_order(self, change_order_id: str):
    """Render the approved change order and upsert it into the bucket."""
    try:
        path = _run_async(persist_approved_artifact(change_order_id))
    except Exception as e:
        failure = ArtifactPersistFailure(change_order_id, str(e)[:200])
        logger.warning(
            f"{failure.message} (attempt {self.request.retries + 1}/"
            f"{self.max_retries + 1})"
        )
        if self.request.retries >= self.max_retries:
            return None
        raise self.retry(exc=e)
    return path


def enqueue_archival(change_order_id) -> bool:
    """Queue archival for an approved change order.

    Returns False when the broker refused the task; the approval itself is
    already committed, so the caller only logs it.
    """
    try:
        archive_approved_change_order.delay(str(change_order_id))
    except Exception as e:
        failure = ArtifactPersistFailure(change_order_id, f"could not enqueue: {e}")
        logger.warning(failure.message)
        return False
    logger.info(f"Queued PDF archival for change order {change_order_id}")
    return True
