# planning/network.py
"""
Модуль графа зависимостей и пересчета дат зависимых задач
"""
from dataclasses import replace
from datetime import timedelta

from logger import logger
from planning.calendar import add_working_duration, count_working_duration, subtract_working_duration
from planning.models import DependencyType, to_midnight

ONE_DAY = timedelta(days=1)

START = 'start'
END = 'end'


class DependencyGraph:
    """
    Read-only adjacency view over the tasks and dependencies of one project.

    Rebuilt from the latest task list on every propagation pass; edges that
    reference unknown tasks are ignored.
    """

    def __init__(self, tasks, dependencies):
        # Создаем словарь id -> задача для быстрого доступа
        self.tasks = {task.id: task for task in tasks}
        self._predecessors = {task_id: [] for task_id in self.tasks}
        self._successors = {task_id: [] for task_id in self.tasks}

        for dependency in dependencies:
            if dependency.successor_id not in self.tasks or dependency.predecessor_id not in self.tasks:
                logger.debug(f"Пропущена зависимость {dependency.predecessor_id} -> {dependency.successor_id}: "
                             f"задача не найдена")
                continue

            self._predecessors[dependency.successor_id].append(dependency)

            successors = self._successors[dependency.predecessor_id]
            if dependency.successor_id not in successors:
                successors.append(dependency.successor_id)

    def __contains__(self, task_id):
        return task_id in self.tasks

    def task(self, task_id):
        return self.tasks.get(task_id)

    def predecessors_of(self, task_id):
        """Incoming edges of a task."""
        return list(self._predecessors.get(task_id, []))

    def successors_of(self, task_id):
        """Direct dependents of a task."""
        return [self.tasks[successor_id] for successor_id in self._successors.get(task_id, [])]


def constraint_bound(dependency, predecessor_start, predecessor_end):
    """
    Вычисляет ограничение, которое зависимость накладывает на задачу.

    End dates are inclusive days, so finish-to-start lets the successor
    start the day after its predecessor ends.

    Args:
        dependency: Dependency edge
        predecessor_start: Resolved start of the predecessor
        predecessor_end: Resolved end of the predecessor

    Returns:
        Tuple (side, bound): side is START or END, bound is the earliest
        allowed date at midnight
    """
    lag = timedelta(days=dependency.lag_days or 0)
    kind = DependencyType(dependency.type)

    if kind == DependencyType.FS:
        return START, to_midnight(predecessor_end) + ONE_DAY + lag
    if kind == DependencyType.SS:
        return START, to_midnight(predecessor_start) + lag
    if kind == DependencyType.FF:
        return END, to_midnight(predecessor_end) + lag
    return END, to_midnight(predecessor_start) + lag


class PropagationEngine:
    """
    Пересчитывает даты задач, зависящих от измененной задачи.

    The walk is depth-first and memoized. A task met again while its own
    predecessors are being resolved keeps its current dates, so cyclic
    dependency sets terminate. Every resolved task is cached; a task computed
    from such dates is computed once more when the walk reaches it, so a
    pass resolves each task at most twice. Nothing outside the engine is
    mutated.
    """

    def __init__(self, graph, calendars=None):
        self.graph = graph
        self.calendars = calendars or {}
        self._resolved = {}
        self._visiting = []
        self._provisional = set()

    def propagate(self, task_id, new_start, new_end):
        """
        Computes the dates of every task affected by a change.

        Args:
            task_id: ID of the mutated task
            new_start: Its new start
            new_end: Its new end

        Returns:
            Dict {task_id: (start, end)} of the recomputed tasks, the
            mutated task excluded
        """
        self._resolved = {task_id: (new_start, new_end)}
        self._visiting = []
        self._provisional = set()

        self._walk(task_id)

        result = dict(self._resolved)
        del result[task_id]

        logger.info(f"Пересчет от задачи {task_id}: затронуто задач - {len(result)}")
        return result

    def reschedule(self, task_id):
        """
        Re-applies a task's own predecessor constraints and propagates.

        Used after a dependency is created.

        Returns:
            Dict {task_id: (start, end)} including the task itself
        """
        self._resolved = {}
        self._visiting = []
        self._provisional = set()

        self._resolve(task_id)
        self._walk(task_id)

        return dict(self._resolved)

    def _walk(self, seed_id):
        # Каждая задача обходится не более одного раза
        walked = {seed_id}
        stack = [successor.id for successor in reversed(self.graph.successors_of(seed_id))]

        while stack:
            task_id = stack.pop()
            if task_id in walked:
                continue
            walked.add(task_id)

            if task_id in self._provisional:
                self._provisional.discard(task_id)
                del self._resolved[task_id]

            self._resolve(task_id)

            for successor in reversed(self.graph.successors_of(task_id)):
                if successor.id not in walked:
                    stack.append(successor.id)

    def _resolve(self, task_id):
        if task_id in self._resolved:
            return self._resolved[task_id]

        task = self.graph.task(task_id)

        if task_id in self._visiting:
            logger.warning(f"Циклическая зависимость на задаче {task_id}, используются текущие даты")
            # Задачи выше по стеку посчитаны по текущим датам и будут пересчитаны при обходе
            position = self._visiting.index(task_id)
            self._provisional.update(self._visiting[position + 1:])
            return task.start, task.end

        self._visiting.append(task_id)

        bounds = {START: None, END: None}
        for dependency in self.graph.predecessors_of(task_id):
            predecessor_start, predecessor_end = self._resolve(dependency.predecessor_id)
            side, bound = constraint_bound(dependency, predecessor_start, predecessor_end)

            # Связывающее ограничение - самое позднее
            if bounds[side] is None or bound > bounds[side]:
                bounds[side] = bound

        dates = self._apply(task, bounds[START], bounds[END])

        self._visiting.pop()
        self._resolved[task_id] = dates
        return dates

    def _apply(self, task, start_bound, end_bound):
        start_fired = start_bound is not None and start_bound > to_midnight(task.start)
        end_fired = end_bound is not None and end_bound > to_midnight(task.end)

        if not start_fired and not end_fired:
            return task.start, task.end

        if start_fired and end_fired:
            new_start, new_end = start_bound, max(start_bound, end_bound)
        elif start_fired:
            new_start = start_bound
            new_end = self._shift_end(task, new_start)
        else:
            new_end = end_bound
            new_start = self._shift_start(task, new_end)

        logger.debug(f"Задача {task.id}: {task.start} - {task.end} -> {new_start} - {new_end}")
        return to_midnight(new_start), to_midnight(new_end)

    def _calendar(self, task):
        if task.calendar_id is None:
            return None
        return self.calendars.get(task.calendar_id)

    def _working_units(self, task):
        if task.mode.counts_every_day:
            return None
        if task.duration_units:
            return task.duration_units
        units = count_working_duration(task.start, task.end, task.mode, self._calendar(task))
        return units or None

    def _shift_end(self, task, new_start):
        units = self._working_units(task)
        if units:
            return add_working_duration(new_start, units, task.mode, self._calendar(task))
        return new_start + (to_midnight(task.end) - to_midnight(task.start))

    def _shift_start(self, task, new_end):
        units = self._working_units(task)
        if units:
            return subtract_working_duration(new_end, units, task.mode, self._calendar(task))
        return new_end - (to_midnight(task.end) - to_midnight(task.start))


def propagate_change(tasks, dependencies, task_id, new_start, new_end, calendars=None):
    """
    Builds the graph of a project and propagates one change.

    Args:
        tasks: All tasks of the project
        dependencies: All dependencies of the project
        task_id: ID of the mutated task
        new_start: New start of the task
        new_end: New end of the task
        calendars: Dict {calendar_id: Calendar}

    Returns:
        Dict {task_id: (start, end)} of the recomputed tasks
    """
    graph = DependencyGraph(tasks, dependencies)
    return PropagationEngine(graph, calendars).propagate(task_id, new_start, new_end)


def changed_only(result, tasks):
    """Оставляет только задачи, даты которых действительно изменились."""
    if not isinstance(tasks, dict):
        tasks = {task.id: task for task in tasks}

    changed = {}
    for task_id, (start, end) in result.items():
        task = tasks.get(task_id)
        if task is None or (task.start, task.end) != (start, end):
            changed[task_id] = (start, end)

    return changed


def apply_dates(tasks, updates):
    """
    Returns a copy of the task list with the updated dates applied.

    Args:
        tasks: Iterable of tasks
        updates: Dict {task_id: (start, end)}
    """
    updated = []
    for task in tasks:
        if task.id in updates:
            start, end = updates[task.id]
            task = replace(task, start=start, end=end)
        updated.append(task)

    return updated
