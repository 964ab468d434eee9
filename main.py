# main.py
import asyncio
import sys

from logger import logger
from database.operations import init_db, SqlTaskStore, SqlMilestoneStore
from planning.batching import ChangeBatcher
from planning.milestones import reconcile_all


def reconcile_project(project_id, task_store, milestone_store):
    """
    Пересчитывает даты всех этапов проекта и сохраняет изменения.

    Returns:
        FlushReport of the save
    """
    tasks = task_store.list_tasks(project_id)
    milestones = milestone_store.list_milestones(project_id)

    batcher = ChangeBatcher(task_store, milestone_store)
    for milestone_id, (start, end) in reconcile_all(tasks, milestones).items():
        batcher.queue_milestone(milestone_id, start, end)

    return asyncio.run(batcher.flush())


def main(argv=None):
    """Сверка дат этапов проекта."""
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1 or not argv[0].isdigit():
        logger.error("Использование: python main.py <project_id>")
        return 2

    project_id = int(argv[0])

    logger.info("Инициализация базы данных...")
    init_db()

    logger.info(f"Сверка этапов проекта {project_id}...")
    report = reconcile_project(project_id, SqlTaskStore(), SqlMilestoneStore())

    if not report.ok:
        logger.error(f"Не удалось сохранить этапы: {report.failed_milestones}")
        return 1

    logger.info("Сверка завершена")
    return 0


if __name__ == '__main__':
    sys.exit(main())
