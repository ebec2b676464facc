"""
Planning Hierarchy

The planning hierarchy tracks the moving target and keeps one independent
weight set per task. Only the active task's weights learn, so gradient
information never crosses task boundaries.
"""

import logging

import torch

from .hierarchy import HierarchyPolicy, PredictiveCodingHierarchy
from .motor import SemanticIndexMap
from .state import DTYPE, WeightSet


logger = logging.getLogger(__name__)


class TaskBankPolicy(HierarchyPolicy):
    """
    Task-indexed bank of weight sets

    Exactly one task is active at a time. Its weights are loaded into the
    hierarchy's working weight set and written back after every weight update.

    Args:
        n_tasks (int): Number of independent tasks
    """

    def __init__(self, n_tasks):
        if isinstance(n_tasks, bool) or not isinstance(n_tasks, int) or n_tasks < 1:
            raise ValueError(f"n_tasks must be a positive integer, got {n_tasks!r}")
        self.n_tasks = n_tasks
        self.current_task = 1
        self.bank = []

    def build_bank(self, config):
        """Draw fresh Xavier weights for every task, task 1 first"""
        self.bank = [WeightSet.xavier(config.n1, config.n2, config.n3) for _ in range(self.n_tasks)]

    def bind(self, hierarchy):
        if not self.bank:
            self.build_bank(hierarchy.config)
        self.current_task = 1
        hierarchy.load_weights(self.bank[0].clone())

    def set_task(self, hierarchy, task_idx):
        if not 1 <= task_idx <= self.n_tasks:
            raise ValueError(f"task index must lie in [1, {self.n_tasks}], got {task_idx}")
        if task_idx != self.current_task:
            logger.debug("%s hierarchy switching task %d -> %d", hierarchy.name, self.current_task, task_idx)
        self.current_task = task_idx
        hierarchy.load_weights(self.bank[task_idx - 1].clone())

    def after_weight_update(self, hierarchy):
        self.bank[self.current_task - 1] = hierarchy.weights.clone()


class PlanningHierarchy(PredictiveCodingHierarchy):
    """
    Predictive coding hierarchy with task-conditional weights

    Args:
        config (HierarchyConfig): Hierarchy configuration
        n_tasks (int): Number of task contexts
        index_map (SemanticIndexMap, optional): L1 slot layout. Defaults to SemanticIndexMap().
    """

    def __init__(self, config, n_tasks, index_map=None):
        if index_map is None:
            index_map = SemanticIndexMap()
        index_map.validate(config.n1)
        self.index_map = index_map
        policy = TaskBankPolicy(n_tasks)
        policy.build_bank(config)
        super(PlanningHierarchy, self).__init__(
            config, name='planning', policy=policy, weights=policy.bank[0].clone()
        )

    @property
    def n_tasks(self):
        return self.policy.n_tasks

    @property
    def current_task(self):
        return self.policy.current_task

    def set_task(self, task_idx):
        """
        Make a task context active

        Must be called before step() whenever the task changes. Switching away
        and back restores exactly the weights and momentum last left for a task.

        Args:
            task_idx (int): One-based task index in [1, n_tasks]
        """
        self.policy.set_task(self, task_idx)

    def task_weights(self, task_idx):
        """Copy of the stored weight set for a task"""
        if not 1 <= task_idx <= self.n_tasks:
            raise ValueError(f"task index must lie in [1, {self.n_tasks}], got {task_idx}")
        return self.policy.bank[task_idx - 1].clone()

    def set_target_observation(self, x, y, z):
        """Write the observed target position into the L1 position slot"""
        self.state.R1[list(self.index_map.pos)] = torch.tensor([x, y, z], dtype=DTYPE)

    def predict_target_position(self):
        """
        Current belief about where the target is

        Returns:
            tuple: (x, y, z) from the position slot of the L1 prediction
        """
        pos = self.state.pred1[list(self.index_map.pos)]
        return tuple(float(v) for v in pos)
