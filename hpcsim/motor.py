"""
Motor Hierarchy

The motor hierarchy treats proprioception as ground truth: L1 is pinned to
the observed player state instead of being nudged toward it. Slots of L1 carry
fixed meanings (position, velocity, bias), and the velocity slot of the L1
prediction is read out as the motor command.
"""

from dataclasses import dataclass

import torch

from .exceptions import ConfigurationError
from .hierarchy import HierarchyPolicy, PredictiveCodingHierarchy, as_vector
from .state import DTYPE


@dataclass(frozen=True)
class SemanticIndexMap:
    """
    Zero-based indices of the semantic slots in L1

    Args:
        pos (tuple): Three position indices
        vel (tuple): Three velocity indices
        bias (int): Bias index
    """

    pos: tuple = (0, 1, 2)
    vel: tuple = (3, 4, 5)
    bias: int = 6

    def __post_init__(self):
        object.__setattr__(self, 'pos', tuple(int(i) for i in self.pos))
        object.__setattr__(self, 'vel', tuple(int(i) for i in self.vel))
        object.__setattr__(self, 'bias', int(self.bias))

    def validate(self, n1):
        """
        Check cardinality, range and disjointness against an L1 width

        Args:
            n1 (int): Width of L1
        """
        if len(self.pos) != 3:
            raise ConfigurationError('idx_pos', "needs exactly 3 indices")
        if len(self.vel) != 3:
            raise ConfigurationError('idx_vel', "needs exactly 3 indices")

        for field, indices in (('idx_pos', self.pos), ('idx_vel', self.vel), ('idx_bias', (self.bias,))):
            for i in indices:
                if not 0 <= i < n1:
                    raise ConfigurationError(field, f"index {i} outside L1 of width {n1}")

        slots = list(self.pos) + list(self.vel) + [self.bias]
        if len(set(slots)) != len(slots):
            raise ConfigurationError('idx_pos', "position, velocity and bias slots must not overlap")


class MotorPolicy(HierarchyPolicy):
    """
    Semantic-slot policy for the motor hierarchy

    Args:
        index_map (SemanticIndexMap): L1 slot layout
        motor_gain (float, optional): Scale applied to velocity commands. Defaults to 1.0.
        max_speed (float, optional): Per-axis command limit. Defaults to 5.0.
        goal_epsilon (float, optional): Distances below this inject no prior. Defaults to 1e-3.
    """

    updates_sensory_layer = False

    def __init__(self, index_map, motor_gain=1.0, max_speed=5.0, goal_epsilon=1e-3):
        if not max_speed > 0:
            raise ConfigurationError('max_speed', "must be positive")
        self.index_map = index_map
        self.motor_gain = motor_gain
        self.max_speed = max_speed
        self.goal_epsilon = goal_epsilon
        self.goal = None

        self._pos = list(index_map.pos)
        self._vel = list(index_map.vel)

    def bind(self, hierarchy):
        self.index_map.validate(hierarchy.config.n1)

    def before_step(self, hierarchy, observation):
        # Missing (NaN) channels keep the previous belief
        state = hierarchy.state
        state.R1 = torch.where(torch.isnan(observation), state.R1, observation).clone()

    def after_predict(self, hierarchy):
        if self.goal is not None:
            self.inject_goal(hierarchy)

    def inject_goal(self, hierarchy):
        """Overwrite the position and velocity predictions with the goal prior"""
        state = hierarchy.state
        delta = self.goal - state.R1[self._pos]
        distance = torch.linalg.norm(delta)
        if distance > self.goal_epsilon:
            state.pred1[self._vel] = delta / distance
            state.pred1[self._pos] = self.goal

    def motor_command(self, hierarchy):
        state = hierarchy.state
        velocity = state.pred1[self._vel]
        if torch.linalg.norm(velocity) < 1e-6:
            velocity = state.R1[self._vel]
        command = torch.clamp(self.motor_gain * velocity, -self.max_speed, self.max_speed)
        return tuple(float(v) for v in command)


class MotorHierarchy(PredictiveCodingHierarchy):
    """
    Predictive coding hierarchy controlling the player

    Args:
        config (HierarchyConfig): Hierarchy configuration
        index_map (SemanticIndexMap, optional): L1 slot layout. Defaults to SemanticIndexMap().
        motor_gain (float, optional): Scale applied to velocity commands. Defaults to 1.0.
        max_speed (float, optional): Per-axis command limit. Defaults to 5.0.
        weights (WeightSet, optional): Initial weights. Defaults to Xavier initialization.
    """

    def __init__(self, config, index_map=None, motor_gain=1.0, max_speed=5.0, weights=None):
        if index_map is None:
            index_map = SemanticIndexMap()
        policy = MotorPolicy(index_map, motor_gain=motor_gain, max_speed=max_speed)
        super(MotorHierarchy, self).__init__(config, name='motor', policy=policy, weights=weights)

    @property
    def index_map(self):
        return self.policy.index_map

    def set_position_observation(self, x, y, z):
        """Write the observed player position into the L1 position slot"""
        self.state.R1[list(self.index_map.pos)] = torch.tensor([x, y, z], dtype=DTYPE)

    def set_velocity_observation(self, vx, vy, vz):
        """Write the observed player velocity into the L1 velocity slot"""
        self.state.R1[list(self.index_map.vel)] = torch.tensor([vx, vy, vz], dtype=DTYPE)

    def set_bias_observation(self, bias):
        self.state.R1[self.index_map.bias] = float(bias)

    def set_target_position(self, goal):
        """
        Impose a goal position as a top-down prior

        The velocity slot of the L1 prediction becomes the unit vector from the
        current position belief toward the goal, and the position slot becomes
        the goal itself. The prior is re-imposed after every prediction until
        clear_target() is called.

        Args:
            goal (array-like): Target position (x, y, z)
        """
        self.policy.goal = as_vector(goal, 3, name="goal")
        self.policy.inject_goal(self)

    def clear_target(self):
        self.policy.goal = None

    def extract_motor_command(self):
        """
        Velocity command for the physics engine

        Reads the velocity slot of the L1 prediction, falling back to the
        observed velocity when the prediction is near zero, scales it by the
        motor gain and clamps each axis to the maximum speed.

        Returns:
            tuple: (vx, vy, vz) as floats
        """
        return self.policy.motor_command(self)

    def get_position_prediction(self):
        pos = self.state.pred1[list(self.index_map.pos)]
        return tuple(float(v) for v in pos)
