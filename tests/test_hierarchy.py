"""
Tests for the predictive coding engine.
"""

import math
import sys
import os

import pytest
import torch

# Add parent directory to path to import hpcsim
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hpcsim.exceptions import ConfigurationError
from hpcsim.hierarchy import PredictiveCodingHierarchy
from hpcsim.state import HierarchyConfig, WeightSet


@pytest.fixture
def config():
    return HierarchyConfig(
        n1=7, n2=20, n3=10,
        eta_rep=0.01, eta_W=0.001, momentum=0.9, weight_decay=0.0001,
        max_weight_value=10.0, max_precision_value=100.0, max_error_value=10.0,
    )


@pytest.fixture
def hierarchy(config):
    torch.manual_seed(0)
    return PredictiveCodingHierarchy(config, name='test')


def test_xavier_scaling(hierarchy):
    """Weight standard deviation matches sqrt(2 / (fan_in + fan_out))"""
    assert hierarchy.W32.shape == (20, 10)
    assert hierarchy.W21.shape == (7, 20)
    assert abs(hierarchy.W32.std().item() - math.sqrt(2.0 / 30)) < 0.1
    assert abs(hierarchy.W21.std().item() - math.sqrt(2.0 / 27)) < 0.1


def test_initial_state(hierarchy):
    """Representations, predictions and errors start at zero, precision is positive"""
    for name in ('R1', 'R2', 'R3', 'pred1', 'pred2', 'E1', 'E2'):
        assert torch.count_nonzero(getattr(hierarchy, name)) == 0
        assert getattr(hierarchy, name).dtype == torch.float32
    assert torch.all(hierarchy.pi1 > 0)
    assert torch.all(hierarchy.pi2 > 0)
    assert torch.count_nonzero(hierarchy.weights.dW21_prev) == 0
    assert not hierarchy.frozen


def test_predict(hierarchy):
    hierarchy.set_state({'R1': torch.zeros(7), 'R2': torch.ones(20), 'R3': torch.ones(10)})
    hierarchy.predict()

    assert torch.allclose(hierarchy.pred2, hierarchy.W32 @ torch.ones(10), atol=1e-5)
    assert torch.allclose(hierarchy.pred1, hierarchy.W21 @ torch.ones(20), atol=1e-5)


def test_zero_weights_no_predictions(config):
    h = PredictiveCodingHierarchy(config, weights=WeightSet(torch.zeros(20, 10), torch.zeros(7, 20)))
    h.set_state({'R1': torch.ones(7), 'R2': torch.ones(20), 'R3': torch.ones(10)})
    h.predict()
    assert torch.count_nonzero(h.pred1) == 0
    assert torch.count_nonzero(h.pred2) == 0


def test_mismatched_weight_shapes_rejected(config):
    with pytest.raises(ValueError):
        PredictiveCodingHierarchy(config, weights=WeightSet(torch.zeros(20, 9), torch.zeros(7, 20)))


def test_compute_errors(hierarchy):
    observation = torch.tensor([1.0, 2.0, 3.0, -1.0, -2.0, -3.0, 1.0])
    hierarchy.set_state({'R1': torch.zeros(7), 'R2': torch.full((20,), 0.5), 'R3': torch.zeros(10)})
    hierarchy.predict()
    hierarchy.compute_errors(observation)

    assert torch.allclose(hierarchy.E1, observation - hierarchy.pred1)
    # pred2 is zero because R3 is zero
    assert torch.allclose(hierarchy.E2, torch.full((20,), 0.5))


@pytest.mark.parametrize('value', [100.0, -100.0, float('inf'), float('-inf')])
def test_error_clipping(hierarchy, value):
    """Large and infinite observations produce errors within the ceiling"""
    hierarchy.compute_errors(torch.full((7,), value))
    assert torch.all(hierarchy.E1.abs() <= hierarchy.config.max_error_value)
    assert torch.all(torch.isfinite(hierarchy.E1))


def test_nan_observation_does_not_propagate(hierarchy):
    observation = torch.ones(7)
    observation[0] = float('nan')
    hierarchy.compute_errors(observation)

    assert not torch.any(torch.isnan(hierarchy.E1))
    assert hierarchy.E1[0].item() == 0.0


def test_wrong_observation_length(hierarchy):
    with pytest.raises(ValueError):
        hierarchy.step([1.0, 2.0, 3.0])


def test_update_representations_l1(hierarchy):
    hierarchy.state.E1 = torch.ones(7)
    hierarchy.update_representations()
    # eta_rep * pi1 * E1 = 0.01 * 10 * 1
    assert torch.allclose(hierarchy.R1, torch.full((7,), 0.1))


def test_update_representations_l2_l3(hierarchy):
    E1 = torch.linspace(-1, 1, 7)
    E2 = torch.linspace(-0.5, 0.5, 20)
    hierarchy.state.E1 = E1
    hierarchy.state.E2 = E2
    hierarchy.update_representations()

    expected_R2 = 0.01 * (hierarchy.W21.T @ (10.0 * E1) + 1.0 * E2)
    expected_R3 = 0.01 * (hierarchy.W32.T @ (1.0 * E2))
    assert torch.allclose(hierarchy.R2, expected_R2, atol=1e-6)
    assert torch.allclose(hierarchy.R3, expected_R3, atol=1e-6)


def test_representation_clipping(hierarchy):
    """Error 10 at precision 100 cannot push representations past +/-10"""
    hierarchy.set_precision(pi1=100.0, pi2=100.0)
    hierarchy.set_state({'R1': torch.full((7,), 5.0), 'R2': torch.full((20,), 5.0), 'R3': torch.full((10,), 5.0)})
    hierarchy.state.E1 = torch.full((7,), 10.0)
    hierarchy.state.E2 = torch.full((20,), 10.0)
    hierarchy.update_representations()

    for rep in (hierarchy.R1, hierarchy.R2, hierarchy.R3):
        assert torch.all(rep.abs() <= 10.0)
    assert torch.all(hierarchy.R1 == 10.0)


def test_update_weights(hierarchy):
    torch.manual_seed(1)
    E1, R2 = torch.randn(7), torch.randn(20)
    E2, R3 = torch.randn(20), torch.randn(10)
    hierarchy.state.E1, hierarchy.state.R2 = E1, R2
    hierarchy.state.E2, hierarchy.state.R3 = E2, R3
    W21, W32 = hierarchy.W21.clone(), hierarchy.W32.clone()

    hierarchy.update_weights()

    # Momentum buffer starts at zero
    dW21 = 0.1 * 0.001 * torch.outer(E1, R2)
    dW32 = 0.1 * 0.001 * torch.outer(E2, R3)
    assert torch.allclose(hierarchy.W21, W21 + dW21 - 0.0001 * W21, atol=1e-6)
    assert torch.allclose(hierarchy.W32, W32 + dW32 - 0.0001 * W32, atol=1e-6)
    assert torch.allclose(hierarchy.weights.dW21_prev, dW21)
    assert torch.allclose(hierarchy.weights.dW32_prev, dW32)


def test_update_weights_applies_momentum(hierarchy):
    hierarchy.state.E1 = torch.ones(7)
    hierarchy.state.R2 = torch.ones(20)
    hierarchy.update_weights()
    first = hierarchy.weights.dW21_prev.clone()

    hierarchy.state.E1 = -torch.ones(7)
    hierarchy.update_weights()
    expected = 0.9 * first + 0.1 * 0.001 * torch.outer(-torch.ones(7), torch.ones(20))
    assert torch.allclose(hierarchy.weights.dW21_prev, expected, atol=1e-8)


def test_transposes_consistent_after_update(hierarchy):
    hierarchy.state.E1 = torch.ones(7)
    hierarchy.state.R2 = torch.ones(20)
    hierarchy.update_weights()
    assert torch.equal(hierarchy.W21_T, hierarchy.W21.T)
    assert torch.equal(hierarchy.W32_T, hierarchy.W32.T)


def test_weight_decay_shrinks_weights(config):
    h = PredictiveCodingHierarchy(config)
    W21 = h.W21.clone()
    # Zero errors: only the decay term acts
    h.update_weights()
    assert torch.allclose(h.W21, W21 * (1 - 0.0001))


def test_freeze_stops_learning(hierarchy):
    hierarchy.freeze()
    hierarchy.state.E1 = torch.full((7,), 10.0)
    hierarchy.state.E2 = torch.full((20,), 10.0)
    hierarchy.state.R2 = torch.ones(20)
    hierarchy.state.R3 = torch.ones(10)
    W21, W32, R1 = hierarchy.W21.clone(), hierarchy.W32.clone(), hierarchy.R1.clone()

    hierarchy.update_weights()
    hierarchy.update_representations()

    assert torch.equal(hierarchy.W21, W21)
    assert torch.equal(hierarchy.W32, W32)
    assert torch.equal(hierarchy.R1, R1)


def test_frozen_hierarchy_still_predicts(hierarchy):
    hierarchy.set_state({'R1': torch.zeros(7), 'R2': torch.ones(20), 'R3': torch.zeros(10)})
    hierarchy.freeze()
    observation = torch.ones(7)
    hierarchy.step(observation)

    assert torch.allclose(hierarchy.pred1, hierarchy.W21 @ torch.ones(20), atol=1e-6)
    assert torch.allclose(hierarchy.E1, observation - hierarchy.pred1, atol=1e-6)
    assert torch.equal(hierarchy.R2, torch.ones(20))


def test_unfreeze_restores_learning(hierarchy):
    hierarchy.freeze()
    hierarchy.unfreeze()
    hierarchy.state.E1 = torch.ones(7)
    hierarchy.state.R2 = torch.ones(20)
    W21 = hierarchy.W21.clone()
    hierarchy.update_weights()
    assert not torch.equal(hierarchy.W21, W21)


def test_free_energy(hierarchy):
    assert hierarchy.compute_free_energy() == 0.0
    hierarchy.set_state({'R1': torch.ones(7), 'R2': torch.full((20,), 2.0), 'R3': torch.zeros(10)})
    assert hierarchy.compute_free_energy() == pytest.approx(7 + 80)


def test_get_state(hierarchy):
    hierarchy.step(torch.ones(7))
    state = hierarchy.get_state()
    for key in ('R1', 'R2', 'R3', 'pred1', 'pred2', 'E1', 'E2', 'pi1', 'pi2', 'FE'):
        assert key in state
    assert state['FE'] == pytest.approx(hierarchy.compute_free_energy())

    # Snapshot is a copy
    state['R1'] += 1.0
    assert not torch.equal(state['R1'], hierarchy.R1)


def test_set_precision_clamped(hierarchy):
    hierarchy.set_precision(pi1=1e6, pi2=torch.full((20,), 3.0))
    assert torch.all(hierarchy.pi1 == hierarchy.config.max_precision_value)
    assert torch.all(hierarchy.pi2 == 3.0)


def test_errors_decrease_with_learning(hierarchy):
    """Repeated exposure to one observation shrinks the sensory prediction error"""
    observation = [1.0, 2.0, 3.0, -1.0, -2.0, -3.0, 1.0]
    hierarchy.step(observation)
    initial_error = torch.linalg.norm(hierarchy.E1).item()

    for _ in range(100):
        hierarchy.step(observation)

    final_error = torch.linalg.norm(hierarchy.E1).item()
    assert final_error < 0.5 * initial_error


def test_long_run_stays_bounded(hierarchy):
    observation = torch.tensor([50.0, -50.0, 3.0, 0.0, 9.0, -9.0, 1.0])
    for _ in range(200):
        hierarchy.step(observation)

    for rep in (hierarchy.R1, hierarchy.R2, hierarchy.R3):
        assert torch.all(torch.isfinite(rep))
        assert torch.all(rep.abs() <= 10.0)
    assert torch.all(hierarchy.E1.abs() <= 10.0)
    assert torch.all(hierarchy.E2.abs() <= 10.0)


@pytest.mark.parametrize('field, overrides', [
    ('n1', {'n1': 0}),
    ('n2', {'n2': 2.5}),
    ('eta_rep', {'eta_rep': 0.0}),
    ('eta_W', {'eta_W': -1.0}),
    ('momentum', {'momentum': 1.0}),
    ('weight_decay', {'weight_decay': -0.1}),
    ('max_error_value', {'max_error_value': 0.0}),
])
def test_invalid_config(field, overrides):
    with pytest.raises(ConfigurationError) as excinfo:
        HierarchyConfig(**overrides)
    assert excinfo.value.field == field
