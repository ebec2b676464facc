"""
Tests for the motor and planning hierarchies.
"""

import sys
import os

import pytest
import torch

# Add parent directory to path to import hpcsim
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hpcsim.exceptions import ConfigurationError
from hpcsim.motor import MotorHierarchy, SemanticIndexMap
from hpcsim.planning import PlanningHierarchy
from hpcsim.state import HierarchyConfig, WeightSet


def zero_weights(n1=7, n2=20, n3=10):
    return WeightSet(torch.zeros(n2, n3), torch.zeros(n1, n2))


@pytest.fixture
def motor():
    torch.manual_seed(0)
    return MotorHierarchy(HierarchyConfig())


@pytest.fixture
def planning():
    torch.manual_seed(0)
    return PlanningHierarchy(HierarchyConfig(n1=7, n2=15, n3=8), n_tasks=3)


# ----------------------------------------------------------------------
# Semantic indices
# ----------------------------------------------------------------------

def test_default_index_map_valid():
    SemanticIndexMap().validate(7)


@pytest.mark.parametrize('index_map, field', [
    (SemanticIndexMap(pos=(0, 1, 2), vel=(2, 3, 4), bias=6), 'idx_pos'),
    (SemanticIndexMap(pos=(0, 1), vel=(3, 4, 5), bias=6), 'idx_pos'),
    (SemanticIndexMap(pos=(0, 1, 2), vel=(3, 4, 9), bias=6), 'idx_vel'),
    (SemanticIndexMap(pos=(0, 1, 2), vel=(3, 4, 5), bias=7), 'idx_bias'),
])
def test_invalid_index_map(index_map, field):
    with pytest.raises(ConfigurationError) as excinfo:
        index_map.validate(7)
    assert excinfo.value.field == field


def test_motor_rejects_overlapping_indices():
    with pytest.raises(ConfigurationError):
        MotorHierarchy(HierarchyConfig(), index_map=SemanticIndexMap(pos=(0, 1, 2), vel=(2, 3, 4), bias=6))


def test_custom_index_map_observations():
    index_map = SemanticIndexMap(pos=(4, 5, 6), vel=(0, 1, 2), bias=3)
    m = MotorHierarchy(HierarchyConfig(), index_map=index_map)
    m.set_position_observation(1.0, 2.0, 3.0)
    m.set_velocity_observation(-1.0, -2.0, -3.0)
    m.set_bias_observation(1.0)

    assert torch.equal(m.R1, torch.tensor([-1.0, -2.0, -3.0, 1.0, 1.0, 2.0, 3.0]))


# ----------------------------------------------------------------------
# Motor hierarchy
# ----------------------------------------------------------------------

def test_motor_pins_sensory_layer(motor):
    """L1 equals the proprioceptive observation after a step"""
    observation = torch.tensor([1.0, 2.0, 3.0, 0.5, 0.5, 0.5, 1.0])
    for _ in range(3):
        motor.step(observation)
        assert torch.equal(motor.R1, observation)


def test_motor_missing_channel_keeps_belief(motor):
    motor.step([1.0, 2.0, 3.0, 0.5, 0.5, 0.5, 1.0])
    motor.step([float('nan'), 4.0, 5.0, 0.0, 0.0, 0.0, 1.0])

    assert motor.R1[0].item() == 1.0
    assert motor.R1[1].item() == 4.0
    assert not torch.any(torch.isnan(motor.E1))


def test_goal_injection(motor):
    motor.set_target_position((3.0, 4.0, 0.0))

    assert torch.allclose(motor.pred1[[3, 4, 5]], torch.tensor([0.6, 0.8, 0.0]))
    assert torch.allclose(motor.pred1[[0, 1, 2]], torch.tensor([3.0, 4.0, 0.0]))
    assert motor.get_position_prediction() == pytest.approx((3.0, 4.0, 0.0))


def test_goal_survives_step(motor):
    motor.set_target_position((3.0, 4.0, 0.0))
    motor.step([0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0])

    assert torch.allclose(motor.pred1[[3, 4, 5]], torch.tensor([0.6, 0.8, 0.0]))
    assert motor.extract_motor_command() == pytest.approx((0.6, 0.8, 0.0), abs=1e-6)


def test_command_points_toward_goal(motor):
    motor.step([1.0, 1.0, 0.0, 0.0, 0.0, 0.0, 1.0])
    motor.set_target_position((-2.0, 1.0, 0.0))
    vx, vy, vz = motor.extract_motor_command()

    assert vx == pytest.approx(-1.0, abs=1e-6)
    assert vy == pytest.approx(0.0, abs=1e-6)
    assert vz == pytest.approx(0.0, abs=1e-6)


def test_goal_within_epsilon_injects_nothing():
    m = MotorHierarchy(HierarchyConfig(), weights=zero_weights())
    m.set_position_observation(1.0, 1.0, 1.0)
    m.set_target_position((1.0, 1.0, 1.0))

    assert torch.count_nonzero(m.pred1) == 0
    assert m.extract_motor_command() == (0.0, 0.0, 0.0)


def test_command_falls_back_to_observed_velocity():
    m = MotorHierarchy(HierarchyConfig(), motor_gain=2.0, weights=zero_weights())
    m.set_velocity_observation(1.0, -2.0, 0.5)
    m.predict()

    assert m.extract_motor_command() == pytest.approx((2.0, -4.0, 1.0))


def test_command_clamped_to_max_speed():
    m = MotorHierarchy(HierarchyConfig(), motor_gain=100.0, max_speed=5.0)
    m.set_target_position((3.0, -4.0, 0.0))

    assert m.extract_motor_command() == pytest.approx((5.0, -5.0, 0.0))


def test_clear_target():
    m = MotorHierarchy(HierarchyConfig(), weights=zero_weights())
    m.set_target_position((3.0, 4.0, 0.0))
    m.clear_target()
    m.predict()

    assert m.policy.goal is None
    assert torch.count_nonzero(m.pred1) == 0


def test_motor_invalid_goal_length(motor):
    with pytest.raises(ValueError):
        motor.set_target_position((1.0, 2.0))


# ----------------------------------------------------------------------
# Planning hierarchy
# ----------------------------------------------------------------------

def test_planning_initial_task(planning):
    assert planning.n_tasks == 3
    assert planning.current_task == 1
    assert planning.weights.equals(planning.task_weights(1))
    assert not planning.task_weights(1).equals(planning.task_weights(2))


def test_planning_bank_uses_first_draws():
    """The task bank holds the first n_tasks Xavier draws after seeding"""
    torch.manual_seed(0)
    expected = [WeightSet.xavier(7, 15, 8) for _ in range(3)]

    torch.manual_seed(0)
    planning = PlanningHierarchy(HierarchyConfig(n1=7, n2=15, n3=8), n_tasks=3)

    for task_idx in range(1, 4):
        assert planning.task_weights(task_idx).equals(expected[task_idx - 1])
    assert planning.weights.equals(expected[0])
    assert planning.weights.W21 is not planning.policy.bank[0].W21


def test_planning_invalid_task_count():
    with pytest.raises(ValueError):
        PlanningHierarchy(HierarchyConfig(n1=7, n2=15, n3=8), n_tasks=0)


@pytest.mark.parametrize('task_idx', [0, 4])
def test_planning_invalid_task(planning, task_idx):
    with pytest.raises(ValueError):
        planning.set_task(task_idx)
    with pytest.raises(ValueError):
        planning.task_weights(task_idx)


def test_task_isolation(planning):
    """Learning on one task never touches another task's weights"""
    observation = [1.0, 2.0, 0.5, -0.5, -0.5, 0.0, 1.0]
    untouched = planning.task_weights(3)
    task2_initial = planning.task_weights(2)

    for _ in range(10):
        planning.step(observation)
    task1_weights = planning.weights.clone()

    planning.set_task(2)
    assert planning.weights.equals(task2_initial)
    for _ in range(10):
        planning.step([-1.0, 0.0, 2.0, 0.5, 0.0, 0.0, 1.0])
    assert not planning.task_weights(2).equals(task2_initial)

    planning.set_task(1)
    assert planning.weights.equals(task1_weights)
    assert planning.task_weights(3).equals(untouched)


def test_frozen_planning_keeps_bank(planning):
    before = planning.task_weights(1)
    planning.freeze()
    for _ in range(5):
        planning.step([1.0, 1.0, 1.0, 0.0, 0.0, 0.0, 1.0])

    assert planning.task_weights(1).equals(before)
    assert planning.weights.equals(before)


def test_task_weights_is_a_copy(planning):
    copy = planning.task_weights(1)
    copy.W21 += 1.0
    assert not planning.task_weights(1).equals(copy)


def test_planning_target_accessors(planning):
    planning.set_target_observation(1.0, 2.0, 3.0)
    assert torch.equal(planning.R1[:3], torch.tensor([1.0, 2.0, 3.0]))

    planning.set_state({'R1': planning.R1, 'R2': torch.ones(15), 'R3': torch.zeros(8)})
    planning.predict()
    assert planning.predict_target_position() == pytest.approx(tuple(planning.pred1[:3].tolist()))
