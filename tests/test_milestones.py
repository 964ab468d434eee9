"""
Tests for milestone date aggregation.
"""
from datetime import datetime

from planning.milestones import group_by_milestone, milestones_to_update, recompute, reconcile_all
from planning.models import Milestone, Task


def dt(day):
    return datetime(2024, 1, day)


def task(task_id, start_day, end_day, milestone_id=None):
    return Task(id=task_id, project_id=1, label=f"T{task_id}", start=dt(start_day), end=dt(end_day),
                milestone_id=milestone_id)


class TestRecompute:

    def test_envelope_of_linked_tasks(self):
        tasks = [task(1, 3, 7, 10), task(2, 5, 9, 10), task(3, 1, 4, 10)]

        assert recompute(10, tasks) == (dt(1), dt(9))

    def test_no_linked_tasks(self):
        assert recompute(10, []) is None

    def test_group_by_milestone_skips_unassigned(self):
        groups = group_by_milestone([task(1, 1, 2, 10), task(2, 3, 4), task(3, 5, 6, 20)])

        assert sorted(groups) == [10, 20]
        assert [item.id for item in groups[10]] == [1]


class TestMilestonesToUpdate:

    def test_only_touched_milestones_are_recomputed(self):
        tasks = [task(1, 1, 2, 10), task(2, 3, 4, 10), task(3, 5, 5, 20)]
        milestones = [
            Milestone(id=10, project_id=1, start=dt(1), end=dt(4)),
            # Stale on purpose: not touched by the change, so not reported
            Milestone(id=20, project_id=1, start=dt(1), end=dt(1)),
        ]

        changes = milestones_to_update({2: (dt(8), dt(9))}, tasks, milestones)

        assert changes == {10: (dt(1), dt(9))}

    def test_mutated_task_counts(self):
        tasks = [task(1, 1, 2, 10), task(2, 3, 4, 10)]
        milestones = [Milestone(id=10, project_id=1, start=dt(1), end=dt(4))]

        changes = milestones_to_update({}, tasks, milestones, seed_task_id=1, seed_dates=(dt(2), dt(2)))

        assert changes == {10: (dt(2), dt(4))}

    def test_unchanged_envelope_is_not_reported(self):
        tasks = [task(1, 1, 5, 10), task(2, 3, 9, 10)]
        milestones = [Milestone(id=10, project_id=1, start=dt(1), end=dt(9))]

        assert milestones_to_update({2: (dt(4), dt(9))}, tasks, milestones) == {}


class TestReconcileAll:

    def test_every_milestone_is_checked(self):
        tasks = [task(1, 3, 7, 10), task(2, 5, 9, 20)]
        milestones = [
            Milestone(id=10, project_id=1, start=dt(3), end=dt(7)),
            Milestone(id=20, project_id=1),
            Milestone(id=30, project_id=1, start=dt(1), end=dt(2)),
        ]

        changes = reconcile_all(tasks, milestones)

        # Milestone 30 has no task and keeps its dates
        assert changes == {20: (dt(5), dt(9))}
