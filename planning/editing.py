"""
Интерактивное редактирование задач на диаграмме Ганта.

A gesture is proposed any number of times while the cursor moves and only
takes effect on commit(): the task, every recomputed dependent task and
every affected milestone are updated together and queued for saving.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import Dict, Optional

from config import RESIZE_SNAP_THRESHOLD_HOURS
from logger import logger
from planning.batching import ChangeBatcher
from planning.calendar import add_working_duration, count_working_duration
from planning.milestones import milestones_to_update
from planning.models import TaskStatus, WorkingTimeMode, to_midnight
from planning.network import DependencyGraph, PropagationEngine, changed_only

DRAG = 'drag'
RESIZE_START = 'resize_start'
RESIZE_END = 'resize_end'

ALL_ACTIONS = frozenset({DRAG, RESIZE_START, RESIZE_END})

# Разрешенные действия для каждого статуса задачи
ALLOWED_ACTIONS = {
    TaskStatus.PLANNED: ALL_ACTIONS,
    TaskStatus.LAUNCHED: frozenset({RESIZE_END}),
    TaskStatus.EXTENDED: frozenset({RESIZE_END}),
    TaskStatus.SUSPENDED: frozenset(),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.POSTPONED: ALL_ACTIONS,
    TaskStatus.CANCELLED: ALL_ACTIONS,
}

NOTICES = {
    DRAG: "Задачу со статусом «{status}» нельзя переместить",
    RESIZE_START: "У задачи со статусом «{status}» нельзя изменить дату начала",
    RESIZE_END: "У задачи со статусом «{status}» нельзя изменить дату окончания",
}


class EditRejected(Exception):
    """Изменение запрещено статусом задачи; notice показывается пользователю."""

    def __init__(self, notice):
        super().__init__(notice)
        self.notice = notice


def is_action_allowed(status, action):
    return action in ALLOWED_ACTIONS.get(TaskStatus(status), ALL_ACTIONS)


def snap_to_day(value):
    """Rounds an instant to the nearest midnight."""
    if not isinstance(value, datetime):
        return value

    midnight = to_midnight(value)
    if value - midnight >= timedelta(hours=12):
        return midnight + timedelta(days=1)
    return midnight


@dataclass
class TimelineScale:
    """Масштаб шкалы времени: пикселей на один день."""
    pixels_per_day: float

    def to_delta(self, pixels):
        return timedelta(days=pixels / self.pixels_per_day)


@dataclass
class Proposal:
    """Candidate state of a task during a gesture, not applied until committed."""
    task_id: int
    start: datetime
    end: datetime
    action: str
    changes: Dict[str, object] = field(default_factory=dict)

    @property
    def status(self):
        return self.changes.get('status')

    @property
    def duration_units(self):
        return self.changes.get('duration_units')


@dataclass
class CommitResult:
    """Все изменения, вызванные одним действием пользователя."""
    task_id: int
    task_updates: Dict[int, tuple] = field(default_factory=dict)
    milestone_updates: Dict[int, tuple] = field(default_factory=dict)
    status: Optional[TaskStatus] = None

    @property
    def is_empty(self):
        return not self.task_updates and not self.milestone_updates


class EditSession:
    """
    Editing state of one project view.

    Args:
        tasks: Tasks of the project
        dependencies: Dependencies of the project
        milestones: Milestones of the project
        calendars: Calendars used by the tasks
        batcher: ChangeBatcher receiving committed changes, optional
        scale: TimelineScale for pixel deltas; without it numeric deltas are days
        timeline: Optional (start, end) window the tasks must stay in
    """

    def __init__(self, tasks, dependencies, milestones=(), calendars=(), batcher=None, scale=None,
                 timeline=None):
        self.tasks = {task.id: task for task in tasks}
        self.dependencies = list(dependencies)
        self.milestones = {milestone.id: milestone for milestone in milestones}
        self.calendars = {calendar.id: calendar for calendar in calendars}
        self.batcher = batcher
        self.scale = scale
        self.timeline = timeline

    @classmethod
    def from_stores(cls, project_id, task_store, milestone_store, calendar_store, delay=None, **kwargs):
        """
        Loads a project from the stores and opens an editing session on it.

        The session's batcher saves through the same task and milestone stores.
        """
        tasks = task_store.list_tasks(project_id)
        dependencies = task_store.list_dependencies(project_id)
        milestones = milestone_store.list_milestones(project_id)

        calendars = {calendar.id: calendar for calendar in calendar_store.list_active_calendars()}
        for task in tasks:
            if task.calendar_id is not None and task.calendar_id not in calendars:
                calendar = calendar_store.get_calendar(task.calendar_id)
                if calendar is not None:
                    calendars[calendar.id] = calendar

        batcher = ChangeBatcher(task_store, milestone_store, delay=delay)
        logger.info(f"Открыт проект {project_id}: задач - {len(tasks)}, зависимостей - {len(dependencies)}")
        return cls(tasks, dependencies, milestones, calendars.values(), batcher=batcher, **kwargs)

    def _task(self, task_id):
        try:
            return self.tasks[task_id]
        except KeyError:
            raise KeyError(f"Задача {task_id} не найдена") from None

    def _calendar(self, task):
        if task.calendar_id is None:
            return None
        return self.calendars.get(task.calendar_id)

    def _check(self, task, action):
        if not is_action_allowed(task.status, action):
            notice = NOTICES[action].format(status=TaskStatus(task.status).value)
            logger.info(f"Задача {task.id}: {notice}")
            raise EditRejected(notice)

    def _check_timeline(self, start, end):
        if self.timeline is None:
            return
        timeline_start, timeline_end = self.timeline
        if start < timeline_start or end > timeline_end:
            raise EditRejected("Задача выходит за границы временной шкалы")

    def _to_delta(self, delta):
        if isinstance(delta, timedelta):
            return delta
        if self.scale is not None:
            return self.scale.to_delta(delta)
        return timedelta(days=delta)

    def _extended_status(self, task, new_end):
        if task.status == TaskStatus.LAUNCHED and new_end > task.end:
            return TaskStatus.EXTENDED
        return None

    def propose_drag(self, task_id, delta):
        """
        Moves a task, keeping its working duration.

        The start snaps to the nearest midnight and the end is recomputed
        from the working units under the task's calendar, so a task moved
        across a weekend gets longer in calendar days.

        Args:
            task_id: ID of the task
            delta: timedelta, or a pixel/day count (see scale)

        Returns:
            Proposal with the new dates and the working units

        Raises:
            EditRejected: The task's status or the timeline forbids the move
        """
        task = self._task(task_id)
        self._check(task, DRAG)

        new_start = snap_to_day(task.start + self._to_delta(delta))
        calendar = self._calendar(task)

        units = task.duration_units or count_working_duration(task.start, task.end, task.mode, calendar)
        if units:
            new_end = add_working_duration(new_start, units, task.mode, calendar)
        else:
            # Задача без рабочих дней сохраняет календарную длительность
            new_end = snap_to_day(task.end + (new_start - task.start))

        self._check_timeline(new_start, new_end)
        return Proposal(task_id, new_start, new_end, DRAG, {'duration_units': units or task.duration_units})

    def propose_resize(self, task_id, edge, delta_or_date):
        """
        Moves one edge of a task, the other edge stays where it is.

        The moved edge snaps to the nearest day only once it has travelled
        at least RESIZE_SNAP_THRESHOLD_HOURS; smaller moves leave the task
        unchanged. The duration is recounted in working units.

        Args:
            task_id: ID of the task
            edge: 'start' or 'end'
            delta_or_date: Target date, timedelta, or a pixel/day count

        Returns:
            Proposal; a launched task whose end moves later becomes extended
        """
        if edge not in ('start', 'end'):
            raise ValueError(f"Неизвестная граница задачи: {edge}")

        task = self._task(task_id)
        action = RESIZE_START if edge == 'start' else RESIZE_END
        self._check(task, action)

        original = task.start if edge == 'start' else task.end

        if isinstance(delta_or_date, date):
            target = delta_or_date
            if isinstance(original, datetime) and not isinstance(target, datetime):
                target = datetime.combine(target, time.min, tzinfo=original.tzinfo)
            moved = target - original
        else:
            moved = self._to_delta(delta_or_date)

        if abs(moved) < timedelta(hours=RESIZE_SNAP_THRESHOLD_HOURS):
            return Proposal(task_id, task.start, task.end, action)

        new_edge = snap_to_day(original + moved)
        if edge == 'start':
            new_start, new_end = min(new_edge, task.end), task.end
        else:
            new_start, new_end = task.start, max(new_edge, task.start)

        self._check_timeline(new_start, new_end)

        changes = {'duration_units': count_working_duration(new_start, new_end, task.mode, self._calendar(task))}
        status = self._extended_status(task, new_end) if edge == 'end' else None
        if status is not None:
            changes['status'] = status

        return Proposal(task_id, new_start, new_end, action, changes)

    def change_duration(self, task_id, duration_units):
        """
        Изменяет длительность задачи в рабочих днях и пересчитывает окончание.

        Gated like a resize of the end edge.
        """
        task = self._task(task_id)
        self._check(task, RESIZE_END)

        new_end = add_working_duration(task.start, duration_units, task.mode, self._calendar(task))

        changes = {'duration_units': duration_units}
        status = self._extended_status(task, new_end)
        if status is not None:
            changes['status'] = status

        return Proposal(task_id, task.start, new_end, RESIZE_END, changes)

    def change_calendar(self, task_id, calendar_id, mode=None):
        """
        Assigns another calendar (and optionally working-time mode) to a task.

        The working duration is kept and the end date recomputed under the
        new calendar. calendar_id None falls back to Monday-Friday.
        """
        task = self._task(task_id)
        self._check(task, RESIZE_END)

        mode = WorkingTimeMode(mode) if mode is not None else task.mode
        calendar = self.calendars.get(calendar_id) if calendar_id is not None else None
        if calendar_id is not None and calendar is None:
            logger.warning(f"Календарь {calendar_id} не загружен, используются дни с понедельника по пятницу")

        units = task.duration_units or count_working_duration(task.start, task.end, task.mode, self._calendar(task))
        new_end = add_working_duration(task.start, units, mode, calendar)

        changes = {'calendar_id': calendar_id, 'mode': mode, 'duration_units': units}
        status = self._extended_status(task, new_end)
        if status is not None:
            changes['status'] = status

        return Proposal(task_id, task.start, new_end, RESIZE_END, changes)

    def commit(self, proposal):
        """
        Applies a proposal together with everything it causes.

        Runs the propagation engine from the task, re-derives the affected
        milestones, updates the in-memory state and queues every change in
        the batcher.

        Returns:
            CommitResult

        Raises:
            EditRejected: The task's current status forbids the proposal's action
        """
        task = self._task(proposal.task_id)
        self._check(task, proposal.action)

        updated =replace(task, start=proposal.start, end=proposal.end, **proposal.changes)

        if updated == task:
            return CommitResult(task.id)

        self.tasks[task.id] = updated

        engine = PropagationEngine(DependencyGraph(self.tasks.values(), self.dependencies), self.calendars)
        result = changed_only(engine.propagate(task.id, updated.start, updated.end), self.tasks)

        milestone_updates = milestones_to_update(
            result, list(self.tasks.values()), self.milestones.values(), task.id, (updated.start, updated.end)
        )

        for task_id, (start, end) in result.items():
            previous = self.tasks[task_id]
            self.tasks[task_id] = replace(previous, start=start, end=end,
                                          duration_units=self._recount(previous, start, end))
        for milestone_id, (start, end) in milestone_updates.items():
            self.milestones[milestone_id] = replace(self.milestones[milestone_id], start=start, end=end)

        task_updates = {task.id: (updated.start, updated.end)}
        task_updates.update(result)

        commit_result = CommitResult(
            task_id=task.id,
            task_updates=task_updates,
            milestone_updates=milestone_updates,
            status=proposal.status
        )

        self._queue(commit_result)
        return commit_result

    def _recount(self, task, start, end):
        """Working units of a task moved by propagation to [start, end]."""
        if task.duration_units is None:
            return None

        calendar = self._calendar(task)
        units = count_working_duration(start, end, task.mode, calendar)
        # Дробная длительность сохраняется, пока число рабочих дней не изменилось
        if units == count_working_duration(task.start, task.end, task.mode, calendar):
            return task.duration_units
        return units

    def _queue(self, commit_result):
        if self.batcher is None:
            return

        for task_id in commit_result.task_updates:
            task = self.tasks[task_id]
            self.batcher.queue_task(task_id, {
                'start': task.start,
                'end': task.end,
                'duration_units': task.duration_units,
                'status': task.status,
                'calendar_id': task.calendar_id,
                'mode': task.mode,
            })
        for milestone_id, (start, end) in commit_result.milestone_updates.items():
            self.batcher.queue_milestone(milestone_id, start, end)

        self.batcher.schedule()

    async def close(self):
        """Закрытие представления: несохраненные изменения отправляются сразу."""
        if self.batcher is None:
            return None
        return await self.batcher.close()
