"""
Пересчет дат этапов (лотов) по датам входящих в них задач.
"""
import logging

from planning.network import apply_dates

logger = logging.getLogger(__name__)


def group_by_milestone(tasks):
    """Группирует задачи по ID этапа, задачи без этапа пропускаются."""
    tasks_by_milestone = {}
    for task in tasks:
        if task.milestone_id is None:
            continue
        if task.milestone_id not in tasks_by_milestone:
            tasks_by_milestone[task.milestone_id] = []
        tasks_by_milestone[task.milestone_id].append(task)

    return tasks_by_milestone


def recompute(milestone_id, tasks_of_milestone):
    """
    Computes the envelope of a milestone's tasks.

    Args:
        milestone_id: ID of the milestone
        tasks_of_milestone: Tasks linked to the milestone

    Returns:
        Tuple (start, end) or None when no linked task has both dates
    """
    dated = [task for task in tasks_of_milestone if task.start is not None and task.end is not None]
    if not dated:
        logger.debug(f"Этап {milestone_id}: нет задач с датами, даты не меняются")
        return None

    # Находим самое раннее начало и самое позднее окончание
    earliest_start = min(task.start for task in dated)
    latest_end = max(task.end for task in dated)
    return earliest_start, latest_end


def milestones_to_update(result, tasks, milestones, seed_task_id=None, seed_dates=None):
    """
    Re-derives the milestones touched by a propagation pass.

    Every milestone owning a task of the result, or the mutated task, is
    recomputed from the task list with the new dates applied.

    Args:
        result: Dict {task_id: (start, end)} from the propagation engine
        tasks: Task list before the pass
        milestones: Milestones of the project
        seed_task_id: ID of the mutated task
        seed_dates: (start, end) of the mutated task

    Returns:
        Dict {milestone_id: (start, end)} of the milestones whose dates change
    """
    updates = dict(result)
    if seed_task_id is not None and seed_dates is not None:
        updates[seed_task_id] = seed_dates

    updated_tasks = apply_dates(tasks, updates)
    tasks_by_milestone = group_by_milestone(updated_tasks)

    touched = {task.milestone_id for task in updated_tasks
               if task.id in updates and task.milestone_id is not None}

    changes = {}
    for milestone in milestones:
        if milestone.id not in touched:
            continue

        envelope = recompute(milestone.id, tasks_by_milestone.get(milestone.id, []))
        if envelope is None:
            continue

        if envelope != (milestone.start, milestone.end):
            changes[milestone.id] = envelope

    return changes


def reconcile_all(tasks, milestones):
    """
    Пересчитывает даты всех этапов проекта.

    Returns:
        Dict {milestone_id: (start, end)} of the milestones whose dates change
    """
    tasks_by_milestone = group_by_milestone(tasks)

    changes = {}
    for milestone in milestones:
        envelope = recompute(milestone.id, tasks_by_milestone.get(milestone.id, []))
        if envelope is not None and envelope != (milestone.start, milestone.end):
            changes[milestone.id] = envelope

    logger.info(f"Сверка этапов: изменено {len(changes)} из {len(milestones)}")
    return changes
