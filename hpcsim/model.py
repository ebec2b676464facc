"""
Interception Model

This module wires the motor and planning hierarchies to the physics engine
and the sensory channel. Each timestep the planning hierarchy observes the
(noisy, delayed) target, its predicted target position is handed to the motor
hierarchy as a goal, and the motor hierarchy's velocity command drives the
player.
"""

import logging

import numpy as np
import torch
from tqdm import tqdm

from .config import SimulationConfig
from .motor import MotorHierarchy
from .planning import PlanningHierarchy
from .physics import PhysicsEngine
from .precision import PrecisionAdapter
from .sensory import DelayBuffer, NoiseGenerator
from .simstate import SimulationState


logger = logging.getLogger(__name__)


class InterceptionModel:
    """
    Simulation orchestrator

    Args:
        config (SimulationConfig, dict or str): Configuration object, parameter
            mapping, or path to a YAML/JSON config file
    """

    def __init__(self, config=None):
        if config is None:
            config = SimulationConfig()
        elif isinstance(config, dict):
            config = SimulationConfig.from_dict(config)
        elif not isinstance(config, SimulationConfig):
            config = SimulationConfig.from_file(config)
        self.config = config

        logging.getLogger('hpcsim').setLevel(config.log_level)
        logger.info("Initializing interception model...")

        if config.seed is not None:
            torch.manual_seed(config.seed)

        index_map = config.index_map()
        self.motor = MotorHierarchy(
            config.motor_hierarchy_config(),
            index_map=index_map,
            motor_gain=config.motor_gain,
            max_speed=config.max_speed,
        )
        self.planning = PlanningHierarchy(
            config.planning_hierarchy_config(),
            n_tasks=config.n_trials,
            index_map=index_map,
        )

        self.physics = PhysicsEngine(config)
        self.state = SimulationState(config.n_steps, config.dt)
        logger.info("State arrays allocated (N=%d)", config.n_steps)

        noise_seed = config.noise_seed if config.noise_seed is not None else config.seed
        self.noise = NoiseGenerator(config.noise_type, seed=noise_seed)
        self.visual_delay = DelayBuffer(config.delay_steps, 6)

        self.adapter = None
        if config.adapt_precision:
            self.adapter = PrecisionAdapter(
                precision_bounds=config.precision_bounds,
                alpha_gain=config.alpha_gain,
                error_threshold=config.error_threshold,
            )

        self.initialize_trajectories()

    def initialize_trajectories(self):
        """Set player and target initial conditions from the config"""
        c = self.config
        self.state.set_initial_player_state(c.player_start, (0.0, 0.0, 0.0))
        if c.target_trajectories:
            traj = c.target_trajectories[0]
            self.state.set_initial_target_state(traj['start_pos'], traj['velocity'])
        else:
            self.state.set_initial_target_state(c.target_start, c.target_velocity)
        self.state.update_distance_metrics(0)

    # ------------------------------------------------------------------
    # Per-step helpers
    # ------------------------------------------------------------------

    def target_acceleration(self, trial_idx):
        if self.config.target_trajectories:
            traj = self.config.target_trajectories[trial_idx - 1]
            return np.asarray(traj.get('acceleration', (0.0, 0.0, 0.0)), dtype=float)
        return np.zeros(3)

    def update_target(self, i):
        """Advance the ball from step i to step i + 1"""
        s = self.state
        dt = self.config.dt

        if self.config.target_dynamics == 'ballistic':
            s.ball_pos[i + 1], s.ball_vel[i + 1] = self.physics.integrate_ball(s.ball_pos[i], s.ball_vel[i], dt)
            return

        # Constant-acceleration kinematics clamped to the workspace
        accel = self.target_acceleration(self.config.trial_index(i))
        s.ball_vel[i + 1] = s.ball_vel[i] + accel * dt
        s.ball_pos[i + 1] = self.physics.clamp_to_workspace(s.ball_pos[i] + dt * s.ball_vel[i + 1])

    def sensory_vector(self, pos, vel, n1):
        index_map = self.config.index_map()
        obs = np.zeros(n1)
        obs[list(index_map.pos)] = pos
        obs[list(index_map.vel)] = vel
        obs[index_map.bias] = 1.0
        return obs

    def observe_player(self, i):
        c = self.config
        pos = self.noise.add_position_noise(self.state.player_pos[i], c.position_noise_std)
        vel = self.noise.add_velocity_noise(self.state.player_vel[i], c.velocity_noise_std)
        return pos, vel

    def observe_target(self, i):
        c = self.config
        pos = self.noise.add_position_noise(self.state.ball_pos[i], c.position_noise_std)
        vel = self.noise.add_velocity_noise(self.state.ball_vel[i], c.velocity_noise_std)
        delayed = self.visual_delay.push_and_read(np.concatenate([pos, vel]))
        return delayed[:3], delayed[3:]

    def adapt_precision(self, i):
        adapter = self.adapter
        self.motor.set_precision(
            pi1=adapter.adapt_motor_l1(self.motor.pi1, self.motor.E1),
            pi2=adapter.adapt_motor_l2(self.motor.pi2, self.motor.E2),
        )
        self.planning.set_precision(
            pi1=adapter.adapt_planning_l1(self.planning.pi1, self.planning.E1),
            pi2=adapter.adapt_planning_l2(self.planning.pi2, self.planning.E2),
        )
        adapter.step_history()

        self.state.record_precision(i, 'motor_l1', float(self.motor.pi1.mean()))
        self.state.record_precision(i, 'motor_l2', float(self.motor.pi2.mean()))
        self.state.record_precision(i, 'plan_l1', float(self.planning.pi1.mean()))
        self.state.record_precision(i, 'plan_l2', float(self.planning.pi2.mean()))

    def step(self, i):
        """
        Advance the whole simulation from timestep i to i + 1

        Args:
            i (int): Zero-based timestep

        Returns:
            tuple: Motor command (vx, vy, vz) applied at this step
        """
        c = self.config
        s = self.state

        self.update_target(i)

        trial_idx = c.trial_index(i)
        if trial_idx != self.planning.current_task or i == 0:
            self.planning.set_task(trial_idx)

        # Planning observes the target and predicts where it is
        target_pos, target_vel = self.observe_target(i)
        self.planning.set_target_observation(*target_pos)
        self.planning.step(self.sensory_vector(target_pos, target_vel, c.n_L1_plan))
        goal = self.physics.clamp_to_workspace(self.planning.predict_target_position())

        # Motor pursues the planned goal
        player_pos, player_vel = self.observe_player(i)
        self.motor.set_target_position(goal)
        self.motor.step(self.sensory_vector(player_pos, player_vel, c.n_L1_motor))
        command = self.motor.extract_motor_command()

        s.player_pos[i + 1], s.player_vel[i + 1] = self.physics.integrate_player(
            s.player_pos[i], s.player_vel[i], command, c.dt
        )
        s.update_distance_metrics(i + 1)

        fe_motor = self.motor.compute_free_energy()
        fe_plan = self.planning.compute_free_energy()
        s.free_energy_motor[i] = fe_motor
        s.free_energy_plan[i] = fe_plan
        s.free_energy_combined[i] = fe_motor + fe_plan

        if self.adapter is not None:
            self.adapt_precision(i)

        return command

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self, progress=True):
        """
        Run the simulation loop

        Args:
            progress (bool, optional): Show a tqdm progress bar. Defaults to True.

        Returns:
            SimulationResults: Trajectories, free energy and distance metrics
        """
        c = self.config
        n_steps = c.n_steps
        logger.info("Starting simulation (%d steps, dt=%.3f)", n_steps, c.dt)

        last_step = 0
        interception_step = None
        for i in tqdm(range(n_steps - 1), desc="Simulating", disable=not progress):
            self.step(i)
            last_step = i + 1

            distance = self.state.distance_to_target[i + 1]
            if interception_step is None and distance <= c.interception_radius:
                interception_step = i + 1
                logger.info("Target intercepted at step %d (t=%.2fs)", i + 1, (i + 1) * c.dt)
                if c.stop_on_interception:
                    break

            if (i + 1) % c.log_interval == 0:
                logger.info(
                    "Step %d/%d: FE_motor=%.2e, FE_plan=%.2e, dist=%.3f",
                    i + 1, n_steps, self.state.free_energy_motor[i], self.state.free_energy_plan[i], distance,
                )

        # Free energy of the final recorded step
        s = self.state
        s.free_energy_motor[last_step] = self.motor.compute_free_energy()
        s.free_energy_plan[last_step] = self.planning.compute_free_energy()
        s.free_energy_combined[last_step] = s.free_energy_motor[last_step] + s.free_energy_plan[last_step]

        results = s.results(last_step, interception_step=interception_step)
        logger.info("Simulation complete. Final distance: %.3f", results.final_distance)
        return results
