"""
Отложенное пакетное сохранение изменений дат задач и этапов.
"""
import asyncio
import inspect
from dataclasses import dataclass, field
import logging
from typing import Dict, List

from config import BATCH_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class FlushReport:
    """Результат одной отправки пакета изменений."""
    saved_tasks: Dict[int, object] = field(default_factory=dict)
    saved_milestones: Dict[int, object] = field(default_factory=dict)
    failed_tasks: List[int] = field(default_factory=list)
    failed_milestones: List[int] = field(default_factory=list)

    @property
    def ok(self):
        return not self.failed_tasks and not self.failed_milestones


async def _call(func, *args):
    # Синхронные хранилища выполняются в отдельном потоке
    if inspect.iscoroutinefunction(func):
        return await func(*args)

    result = await asyncio.to_thread(func, *args)
    if asyncio.iscoroutine(result):
        result = await result
    return result


class ChangeBatcher:
    """
    Collects task and milestone changes and saves them in one batch.

    Pending changes are keyed by record id; a later change of the same id
    replaces the earlier one. The batch is sent once no change has been
    added for `delay` seconds, or immediately on close(). Failed records
    stay queued for the next flush and are not retried automatically.
    """

    def __init__(self, task_store, milestone_store, delay=None):
        self.task_store = task_store
        self.milestone_store = milestone_store
        self.delay = BATCH_DEBOUNCE_SECONDS if delay is None else delay

        self.pending_tasks = {}
        self.pending_milestones = {}

        self._timer = None
        self._scheduled_flush = None
        self._lock = None

    @property
    def has_pending(self):
        return bool(self.pending_tasks or self.pending_milestones)

    def queue_task(self, task_id, patch):
        """
        Ставит изменение задачи в очередь.

        Args:
            task_id: ID of the task
            patch: Dict of the fields to save (start, end, duration_units, status...)
        """
        self.pending_tasks[task_id] = dict(patch)

    def queue_milestone(self, milestone_id, start, end):
        self.pending_milestones[milestone_id] = {'start': start, 'end': end}

    def schedule(self):
        """
        Restarts the debounce timer.

        Without a running event loop nothing is scheduled and the caller is
        expected to call flush() itself.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Нет запущенного цикла событий, сохранение только по flush()")
            return

        if self._timer is not None:
            self._timer.cancel()

        self._timer = loop.call_later(self.delay, self._on_timer)

    def _on_timer(self):
        self._timer = None
        self._scheduled_flush = asyncio.ensure_future(self.flush())
        self._scheduled_flush.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, future):
        if self._scheduled_flush is future:
            self._scheduled_flush = None
        if future.cancelled():
            logger.warning("Отложенное сохранение отменено")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Ошибка при отложенном сохранении: {error!r}")

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def flush(self):
        """
        Sends every pending change concurrently, one call per record.

        Returns:
            FlushReport with the fresh state returned by the stores and the
            ids that failed
        """
        if self._lock is None:
            self._lock = asyncio.Lock()

        # Не более одной отправки одновременно: одна запись - один запрос
        async with self._lock:
            self._cancel_timer()

            tasks = dict(self.pending_tasks)
            milestones = dict(self.pending_milestones)
            report = FlushReport()

            if not tasks and not milestones:
                return report

            calls = []
            keys = []
            for task_id, patch in tasks.items():
                calls.append(_call(self.task_store.patch_task, task_id, patch))
                keys.append(('task', task_id, patch))
            for milestone_id, patch in milestones.items():
                calls.append(_call(self.milestone_store.patch_milestone, milestone_id, patch['start'], patch['end']))
                keys.append(('milestone', milestone_id, patch))

            outcomes = await asyncio.gather(*calls, return_exceptions=True)

            for (kind, record_id, patch), outcome in zip(keys, outcomes):
                pending = self.pending_tasks if kind == 'task' else self.pending_milestones
                failed = report.failed_tasks if kind == 'task' else report.failed_milestones
                saved = report.saved_tasks if kind == 'task' else report.saved_milestones

                if isinstance(outcome, BaseException) or outcome is None or outcome is False:
                    logger.error(f"Ошибка при сохранении ({kind} {record_id}): {outcome!r}")
                    failed.append(record_id)
                    continue

                # Изменение, пришедшее во время отправки, остается в очереди
                if pending.get(record_id) is patch:
                    del pending[record_id]
                saved[record_id] = outcome

            logger.info(f"Сохранено задач: {len(report.saved_tasks)}, этапов: {len(report.saved_milestones)}, "
                        f"ошибок: {len(report.failed_tasks) + len(report.failed_milestones)}")
            return report

    async def close(self):
        """Сохраняет все накопленные изменения немедленно (закрытие представления)."""
        self._cancel_timer()

        # Дожидаемся отправки, запущенной таймером; ее ошибки уже записаны в журнал
        scheduled = self._scheduled_flush
        if scheduled is not None and not scheduled.done():
            await asyncio.gather(scheduled, return_exceptions=True)

        return await self.flush()
