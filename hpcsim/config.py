"""
Simulation Configuration

A single dataclass carries every parameter of an interception run: network
dimensions, learning rates, physics, sensory noise and delay, precision
adaptation and logging. Configurations can be built from keyword arguments,
dictionaries, or YAML/JSON files, and are validated on construction.
"""

import dataclasses
from dataclasses import asdict, dataclass, field, fields
import json
import logging
from pathlib import Path

import numpy as np
import yaml

from .exceptions import ConfigurationError
from .motor import SemanticIndexMap
from .precision import CHANNELS, DEFAULT_BOUNDS
from .state import HierarchyConfig


logger = logging.getLogger(__name__)


NOISE_TYPES = ('none', 'gaussian', 'uniform', 'salt_and_pepper')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')
TARGET_DYNAMICS = ('kinematic', 'ballistic')
CONFIG_SUFFIXES = ('.yaml', '.yml', '.json')


def _config_path(path):
    """Resolve a config file path, rejecting unknown formats before any file is touched"""
    path = Path(path)
    if path.suffix not in CONFIG_SUFFIXES:
        raise ConfigurationError('path', f"unsupported config file format: {path.suffix}")
    return path


@dataclass
class SimulationConfig:
    """Parameters of one interception simulation"""

    # Network architecture
    n_L1_motor: int = 7
    n_L2_motor: int = 20
    n_L3_motor: int = 10
    n_L1_plan: int = 7
    n_L2_plan: int = 15
    n_L3_plan: int = 8

    # Semantic indices into L1 (zero-based)
    idx_pos: tuple = (0, 1, 2)
    idx_vel: tuple = (3, 4, 5)
    idx_bias: int = 6

    # Learning
    eta_rep: float = 0.01
    eta_W: float = 0.001
    momentum: float = 0.9
    weight_decay: float = 1e-4
    motor_gain: float = 1.0
    max_speed: float = 5.0

    # Simulation timing
    dt: float = 0.02
    T_per_trial: float = 50.0
    n_trials: int = 3

    # Physics
    gravity: float = 9.81
    restitution: float = 0.75
    ground_friction: float = 0.90
    air_drag: float = 0.001
    player_damping: float = 0.85
    workspace_bounds: tuple = ((-5.0, 5.0), (-5.0, 5.0), (0.0, 5.0))

    # Initial conditions and per-trial target kinematics
    player_start: tuple = (0.0, 0.0, 0.0)
    target_start: tuple = (2.0, 2.0, 1.0)
    target_velocity: tuple = (-0.5, -0.5, 0.0)
    target_trajectories: tuple = ()
    target_dynamics: str = 'kinematic'

    # Sensory noise and visuomotor delay
    noise_type: str = 'none'
    position_noise_std: float = 0.0
    velocity_noise_std: float = 0.0
    noise_seed: int = None
    visual_latency_ms: float = 0.0

    # Precision adaptation
    adapt_precision: bool = False
    alpha_gain: float = 0.5
    error_threshold: float = 0.1
    precision_bounds: dict = field(default_factory=lambda: {k: tuple(v) for k, v in DEFAULT_BOUNDS.items()})

    # Interception
    interception_radius: float = 0.3
    stop_on_interception: bool = False

    # Logging and reproducibility
    log_level: str = 'INFO'
    log_interval: int = 500
    seed: int = None

    # Safety bounds
    max_weight_value: float = 100.0
    max_precision_value: float = 500.0
    max_error_value: float = 10.0

    def __post_init__(self):
        self.idx_pos = tuple(int(i) for i in self.idx_pos)
        self.idx_vel = tuple(int(i) for i in self.idx_vel)
        self.workspace_bounds = tuple(tuple(float(v) for v in row) for row in self.workspace_bounds)
        self.player_start = tuple(float(v) for v in self.player_start)
        self.target_start = tuple(float(v) for v in self.target_start)
        self.target_velocity = tuple(float(v) for v in self.target_velocity)
        self.target_trajectories = tuple(
            {key: tuple(float(v) for v in value) for key, value in dict(traj).items()}
            for traj in self.target_trajectories
        )
        self.precision_bounds = {k: tuple(float(b) for b in v) for k, v in self.precision_bounds.items()}
        self.log_level = str(self.log_level).upper()
        if self.log_level == 'WARN':
            self.log_level = 'WARNING'
        self.validate()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self):
        for name in ('n_L1_motor', 'n_L2_motor', 'n_L3_motor', 'n_L1_plan', 'n_L2_plan', 'n_L3_plan', 'n_trials'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(name, f"must be a positive integer, got {value!r}")

        index_map = self.index_map()
        index_map.validate(self.n_L1_motor)
        index_map.validate(self.n_L1_plan)

        for name in ('eta_rep', 'eta_W', 'dt', 'T_per_trial', 'max_speed', 'interception_radius'):
            if not getattr(self, name) > 0:
                raise ConfigurationError(name, "must be positive")

        if not 0.0 <= self.momentum < 1.0:
            raise ConfigurationError('momentum', "must lie in [0, 1)")
        if self.weight_decay < 0:
            raise ConfigurationError('weight_decay', "must be non-negative")
        if self.weight_decay >= 0.5:
            logger.warning(
                "weight_decay=%g is an L2 coefficient (W -= weight_decay * W); "
                "values near 1 erase the weights every step", self.weight_decay
            )

        for name in ('restitution', 'ground_friction', 'player_damping'):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ConfigurationError(name, "must lie in [0, 1]")
        for name in ('gravity', 'air_drag', 'position_noise_std', 'velocity_noise_std', 'visual_latency_ms'):
            if getattr(self, name) < 0:
                raise ConfigurationError(name, "must be non-negative")

        if len(self.workspace_bounds) != 3 or any(len(row) != 2 for row in self.workspace_bounds):
            raise ConfigurationError('workspace_bounds', "must be a 3x2 [min, max] table for x, y, z")
        if not all(lo < hi for lo, hi in self.workspace_bounds):
            raise ConfigurationError('workspace_bounds', "min must be < max")

        for name in ('player_start', 'target_start', 'target_velocity'):
            if len(getattr(self, name)) != 3:
                raise ConfigurationError(name, "must have 3 components")

        if self.target_trajectories and len(self.target_trajectories) < self.n_trials:
            raise ConfigurationError('target_trajectories', "needs one trajectory per trial")
        for i, traj in enumerate(self.target_trajectories):
            for key in ('start_pos', 'velocity'):
                if key not in traj or len(traj[key]) != 3:
                    raise ConfigurationError('target_trajectories', f"trajectory {i} needs a 3-component {key}")
            if len(traj.get('acceleration', (0, 0, 0))) != 3:
                raise ConfigurationError('target_trajectories', f"trajectory {i} acceleration needs 3 components")

        if self.target_dynamics not in TARGET_DYNAMICS:
            raise ConfigurationError('target_dynamics', f"must be one of {TARGET_DYNAMICS}")

        if self.noise_type not in NOISE_TYPES:
            raise ConfigurationError('noise_type', f"must be one of {NOISE_TYPES}")

        unknown = set(self.precision_bounds) - set(CHANNELS)
        if unknown:
            raise ConfigurationError('precision_bounds', f"unknown channels {sorted(unknown)}")

        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError('log_level', f"must be one of {LOG_LEVELS}")
        if self.log_interval < 1:
            raise ConfigurationError('log_interval', "must be at least 1")

        for name in ('max_weight_value', 'max_precision_value', 'max_error_value'):
            if not getattr(self, name) > 0:
                raise ConfigurationError(name, "safety ceiling must be positive")

    # ------------------------------------------------------------------
    # Derived parameters
    # ------------------------------------------------------------------

    @property
    def total_time(self):
        return self.T_per_trial * self.n_trials

    @property
    def n_steps(self):
        """Number of timesteps including t = 0"""
        return int(round(self.total_time / self.dt)) + 1

    @property
    def time(self):
        return np.arange(self.n_steps) * self.dt

    @property
    def trial_steps(self):
        return max(1, int(round(self.T_per_trial / self.dt)))

    @property
    def delay_steps(self):
        return int(round(self.visual_latency_ms / 1000.0 / self.dt))

    def trial_index(self, step):
        """One-based trial (task) index for a zero-based timestep"""
        return max(1, min(self.n_trials, step // self.trial_steps + 1))

    def index_map(self):
        return SemanticIndexMap(self.idx_pos, self.idx_vel, self.idx_bias)

    def _hierarchy_config(self, n1, n2, n3):
        return HierarchyConfig(
            n1=n1, n2=n2, n3=n3,
            eta_rep=self.eta_rep,
            eta_W=self.eta_W,
            momentum=self.momentum,
            weight_decay=self.weight_decay,
            max_weight_value=self.max_weight_value,
            max_precision_value=self.max_precision_value,
            max_error_value=self.max_error_value,
        )

    def motor_hierarchy_config(self):
        return self._hierarchy_config(self.n_L1_motor, self.n_L2_motor, self.n_L3_motor)

    def planning_hierarchy_config(self):
        return self._hierarchy_config(self.n_L1_plan, self.n_L2_plan, self.n_L3_plan)

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, params):
        """
        Build a configuration from a mapping, ignoring unknown keys

        Args:
            params (dict): Parameter values

        Returns:
            SimulationConfig: Validated configuration
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(params) - known)
        if unknown:
            logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in params.items() if k in known})

    @classmethod
    def from_file(cls, path):
        """
        Load a configuration from a YAML or JSON file

        Args:
            path (str or Path): File ending in .yaml, .yml or .json

        Returns:
            SimulationConfig: Validated configuration
        """
        path = _config_path(path)
        with open(path, 'r', encoding='utf-8') as fh:
            if path.suffix == '.json':
                params = json.load(fh)
            else:
                params = yaml.safe_load(fh) or {}
        if not isinstance(params, dict):
            raise ConfigurationError('path', "config file must contain a mapping")
        return cls.from_dict(params)

    def to_dict(self):
        """Plain-Python representation (lists instead of tuples)"""
        return json.loads(json.dumps(asdict(self)))

    def save(self, path):
        path = _config_path(path)
        with open(path, 'w', encoding='utf-8') as fh:
            if path.suffix == '.json':
                json.dump(self.to_dict(), fh, indent=2)
            else:
                yaml.safe_dump(self.to_dict(), fh, sort_keys=False)

    def replace(self, **overrides):
        """Copy with some fields overridden (re-validated)"""
        return dataclasses.replace(self, **overrides)
