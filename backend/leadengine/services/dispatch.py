"""Background task dispatch over RQ.

Tasks are enqueued only after the lead write has committed. Delivery is
at-least-once and best-effort: an enqueue failure is logged and swallowed
so that lead correctness never depends on notification success.
"""

from datetime import timedelta

import redis as redis_lib
import structlog
from rq import Queue, Retry

from leadengine.config import settings

logger = structlog.get_logger()

_redis: redis_lib.Redis | None = None

WORKER_MODULE = "leadengine.workers.notifications"


def get_redis() -> redis_lib.Redis:
    global _redis
    if _redis is None:
        _redis = redis_lib.from_url(settings.redis_url)
    return _redis


class TaskDispatcher:
    def __init__(self, queue_name: str | None = None, connection: redis_lib.Redis | None = None):
        self.queue_name = queue_name or settings.notification_queue
        self._connection = connection

    def _queue(self) -> Queue:
        return Queue(self.queue_name, connection=self._connection or get_redis())

    def _enqueue(self, task: str, *args) -> bool:
        try:
            self._queue().enqueue(
                f"{WORKER_MODULE}.{task}",
                *args,
                job_timeout=settings.job_timeout,
                retry=Retry(max=3, interval=[10, 30, 60]),
            )
            return True
        except Exception as e:
            logger.error("failed_to_enqueue_task", task=task, error=str(e))
            return False

    def notify_new_lead(self, lead_id: str) -> bool:
        return self._enqueue("send_new_lead_notification", lead_id)

    def notify_assignment(self, lead_id: str, agent_id: str) -> bool:
        return self._enqueue("send_assignment_notification", lead_id, agent_id)

    def notify_site_visit(self, lead_id: str, visit_id: str, snapshot: dict | None = None) -> bool:
        """``snapshot`` carries a visit that no longer exists on the lead (deleted)."""
        return self._enqueue("send_site_visit_notification", lead_id, visit_id, snapshot)

    def emit_webhook(self, lead_id: str, event: str, previous: dict | None = None) -> bool:
        return self._enqueue("deliver_lead_webhook", lead_id, event, previous)

    def rescore(self, lead_id: str) -> bool:
        return self._enqueue("rescore_lead", lead_id)

    def bulk_export(self, lead_ids: list[str]) -> bool:
        return self._enqueue("export_leads", lead_ids)

    def schedule_reminder_sweep(self, delay: int | None = None) -> bool:
        """Queue the next reminder sweep; RQ's scheduler releases it when due."""
        delay = settings.reminder_sweep_interval if delay is None else delay
        try:
            self._queue().enqueue_in(
                timedelta(seconds=delay),
                f"{WORKER_MODULE}.send_due_reminders",
                job_timeout=settings.job_timeout,
            )
            return True
        except Exception as e:
            logger.error("failed_to_schedule_reminder_sweep", error=str(e))
            return False
