"""
Simulation State

Preallocated trajectories and metrics for one interception run.
"""

from dataclasses import dataclass, field

import numpy as np


@dataclass
class SimulationResults:
    """Trajectories and summary metrics of a finished run"""

    time: np.ndarray
    player_pos: np.ndarray
    player_vel: np.ndarray
    ball_pos: np.ndarray
    ball_vel: np.ndarray
    free_energy_motor: np.ndarray
    free_energy_plan: np.ndarray
    free_energy_combined: np.ndarray
    distance_to_target: np.ndarray
    cumulative_error: np.ndarray
    final_distance: float
    mean_distance: float
    interception_success: bool
    interception_step: int = None
    precision_history: dict = field(default_factory=dict)

    @property
    def n_steps(self):
        return len(self.time)


class SimulationState:
    """
    Per-timestep arrays for player, ball, free energy and distance

    Args:
        n_steps (int): Number of timesteps to allocate
        dt (float): Timestep, used for the time axis
    """

    def __init__(self, n_steps, dt):
        self.n_steps = n_steps
        self.dt = dt

        self.player_pos = np.zeros((n_steps, 3))
        self.player_vel = np.zeros((n_steps, 3))
        self.ball_pos = np.zeros((n_steps, 3))
        self.ball_vel = np.zeros((n_steps, 3))

        self.free_energy_motor = np.zeros(n_steps)
        self.free_energy_plan = np.zeros(n_steps)
        self.free_energy_combined = np.zeros(n_steps)

        self.distance_to_target = np.zeros(n_steps)
        self.cumulative_error = np.zeros(n_steps)

        self.precision_history = {}

    def set_initial_player_state(self, pos, vel):
        self.player_pos[0] = pos
        self.player_vel[0] = vel

    def set_initial_target_state(self, pos, vel):
        self.ball_pos[0] = pos
        self.ball_vel[0] = vel

    def update_distance_metrics(self, i):
        """Euclidean player-ball distance at step i and its running sum"""
        self.distance_to_target[i] = np.linalg.norm(self.player_pos[i] - self.ball_pos[i])
        previous = self.cumulative_error[i - 1] if i > 0 else 0.0
        self.cumulative_error[i] = previous + self.distance_to_target[i]

    def record_precision(self, i, name, value):
        if name not in self.precision_history:
            self.precision_history[name] = np.zeros(self.n_steps)
        self.precision_history[name][i] = value

    def snapshot(self, i):
        return {
            'player_pos': self.player_pos[i].copy(),
            'player_vel': self.player_vel[i].copy(),
            'ball_pos': self.ball_pos[i].copy(),
            'ball_vel': self.ball_vel[i].copy(),
        }

    def results(self, last_step=None, interception_step=None):
        """
        Package the recorded trajectories up to and including last_step

        Args:
            last_step (int, optional): Last valid timestep. Defaults to the final step.
            interception_step (int, optional): Step at which the ball was caught. Defaults to None.

        Returns:
            SimulationResults: Truncated trajectories and summary metrics
        """
        if last_step is None:
            last_step = self.n_steps - 1
        end = last_step + 1

        return SimulationResults(
            time=np.arange(end) * self.dt,
            player_pos=self.player_pos[:end].copy(),
            player_vel=self.player_vel[:end].copy(),
            ball_pos=self.ball_pos[:end].copy(),
            ball_vel=self.ball_vel[:end].copy(),
            free_energy_motor=self.free_energy_motor[:end].copy(),
            free_energy_plan=self.free_energy_plan[:end].copy(),
            free_energy_combined=self.free_energy_combined[:end].copy(),
            distance_to_target=self.distance_to_target[:end].copy(),
            cumulative_error=self.cumulative_error[:end].copy(),
            final_distance=float(self.distance_to_target[last_step]),
            mean_distance=float(np.mean(self.distance_to_target[:end])),
            interception_success=interception_step is not None,
            interception_step=interception_step,
            precision_history={k: v[:end].copy() for k, v in self.precision_history.items()},
        )
