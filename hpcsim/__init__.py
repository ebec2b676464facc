"""
hpcsim: Hierarchical Predictive Coding Interception Simulator
=============================================================

A PyTorch implementation of layered predictive coding applied to sensorimotor
interception: a virtual agent learns to catch a moving target under sensory
delay, noise and multiple task contexts.

Each hierarchy has three layers. Every timestep the upper layers predict the
layers below, precision-weighted prediction errors update both the
representations and the generative weights, and precision itself adapts to
the recent error history.
"""

from .exceptions import ConfigurationError
from .state import HierarchyConfig, LayerState, WeightSet
from .hierarchy import HierarchyPolicy, PredictiveCodingHierarchy
from .motor import MotorHierarchy, MotorPolicy, SemanticIndexMap
from .planning import PlanningHierarchy, TaskBankPolicy
from .precision import PrecisionAdapter
from .config import SimulationConfig
from .model import InterceptionModel

__version__ = '0.1.0'

__all__ = [
    'ConfigurationError',
    'HierarchyConfig',
    'LayerState',
    'WeightSet',
    'HierarchyPolicy',
    'PredictiveCodingHierarchy',
    'MotorHierarchy',
    'MotorPolicy',
    'SemanticIndexMap',
    'PlanningHierarchy',
    'TaskBankPolicy',
    'PrecisionAdapter',
    'SimulationConfig',
    'InterceptionModel',
]
