"""
Tests for adaptive precision.
"""

import sys
import os

import numpy as np
import pytest
import torch

# Add parent directory to path to import hpcsim
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hpcsim.exceptions import ConfigurationError
from hpcsim.precision import PrecisionAdapter


def test_reliable_channel_gains_precision():
    """A consistently accurate channel ends with far higher precision than a noisy one"""
    adapter = PrecisionAdapter()
    pi_reliable = torch.full((7,), 10.0)
    pi_noisy = torch.full((7,), 10.0)

    for _ in range(100):
        pi_reliable = adapter.adapt_motor_l1(pi_reliable, torch.full((7,), 0.02))
        pi_noisy = adapter.adapt_planning_l1(pi_noisy, torch.full((7,), 0.5))
        adapter.step_history()

    assert pi_reliable.mean().item() > 15.0
    assert pi_noisy.mean().item() < 8.0
    assert pi_reliable.mean().item() / pi_noisy.mean().item() > 3.0


def test_upper_bound_respected():
    adapter = PrecisionAdapter(precision_bounds={'motor_l1': (1.0, 500.0)})
    pi = torch.full((7,), 400.0)
    for _ in range(60):
        pi = adapter.adapt_motor_l1(pi, torch.full((7,), 1e-4))
        adapter.step_history()
        assert torch.all(pi <= 500.0)
    assert torch.all(pi == 500.0)


def test_lower_bound_respected():
    adapter = PrecisionAdapter()
    pi = torch.full((20,), 10.0)
    for _ in range(60):
        pi = adapter.adapt_motor_l2(pi, torch.full((20,), 5.0))
        adapter.step_history()
        assert torch.all(pi >= 0.1)
    assert torch.allclose(pi, torch.full((20,), 0.1))


def test_adaptation_factor_clamped():
    adapter = PrecisionAdapter(alpha_gain=20.0)
    assert adapter.adaptation_factor(0.0) == 2.0
    assert adapter.adaptation_factor(10.0) == 0.5


def test_adaptation_factor_direction():
    adapter = PrecisionAdapter(alpha_gain=0.5, error_threshold=0.1)
    assert adapter.adaptation_factor(0.0) == pytest.approx(1.05)
    assert adapter.adaptation_factor(0.3) == pytest.approx(0.9)
    assert adapter.adaptation_factor(0.1) == pytest.approx(1.0)


def test_warm_up_averages_collected_samples():
    """Before the window fills only recorded samples are averaged"""
    adapter = PrecisionAdapter()
    adapter.adapt_motor_l1(torch.ones(7), torch.full((7,), 0.3))
    adapter.step_history()
    adapter.adapt_motor_l1(torch.ones(7), torch.zeros(7))

    assert adapter.channels['motor_l1'].smoothed_error() == pytest.approx(0.15, rel=1e-5)


def test_full_window_average():
    adapter = PrecisionAdapter(window_size=4)
    for value in (1.0, 1.0, 2.0, 2.0, 2.0, 2.0):
        adapter.adapt_planning_l1(torch.ones(7), torch.full((7,), value))
        adapter.step_history()

    assert adapter.channels['plan_l1'].smoothed_error() == pytest.approx(2.0, rel=1e-5)


def test_history_index_wraps():
    adapter = PrecisionAdapter(window_size=3)
    for _ in range(3):
        adapter.step_history()
    assert adapter.history_idx == 0
    adapter.step_history()
    assert adapter.history_idx == 1


def test_statistics_and_reset():
    adapter = PrecisionAdapter()
    for _ in range(5):
        adapter.adapt_motor_l1(torch.ones(7), torch.full((7,), 0.02))
        adapter.adapt_planning_l1(torch.ones(7), torch.full((7,), 0.5))
        adapter.adapt_planning_l2(torch.ones(15), torch.full((15,), 0.5))
        adapter.step_history()

    stats = adapter.get_statistics()
    assert stats['motor_adaptations'] == 5
    assert stats['plan_adaptations'] == 5
    assert stats['motor_l1_error_mean'] == pytest.approx(0.02, rel=1e-4)
    assert stats['plan_l2_error_mean'] == pytest.approx(0.5, rel=1e-4)
    assert stats['motor_l2_error_mean'] == 0.0

    adapter.reset()
    stats = adapter.get_statistics()
    assert stats['motor_adaptations'] == 0
    assert stats['plan_adaptations'] == 0
    assert adapter.history_idx == 0
    assert stats['motor_l1_error_mean'] == 0.0


def test_adaptation_count_tracks_sensory_layers_only():
    """Representation-layer channels adapt precision without adding to the counts"""
    adapter = PrecisionAdapter()
    for _ in range(5):
        pi_motor = adapter.adapt_motor_l2(torch.ones(20), torch.full((20,), 0.5))
        pi_plan = adapter.adapt_planning_l2(torch.ones(15), torch.full((15,), 0.5))
        adapter.step_history()

    assert bool((pi_motor < 1.0).all())
    assert bool((pi_plan < 1.0).all())
    stats = adapter.get_statistics()
    assert stats['motor_adaptations'] == 0
    assert stats['plan_adaptations'] == 0


def test_nan_error_treated_as_zero():
    """A NaN error component counts as zero error instead of doubling precision"""
    adapter = PrecisionAdapter()
    pi = adapter.adapt_motor_l1(torch.full((7,), 10.0), torch.full((7,), float('nan')))

    assert torch.allclose(pi, torch.full((7,), 10.5))
    assert not np.isnan(adapter.channels['motor_l1'].history).any()

    error = torch.full((7,), 0.3)
    error[2] = float('nan')
    pi = adapter.adapt_planning_l1(torch.full((7,), 10.0), error)
    assert bool(torch.isfinite(pi).all())
    assert bool((pi < 20.0).all())


def test_unknown_channel():
    adapter = PrecisionAdapter()
    with pytest.raises(KeyError):
        adapter.adapt('vision_l1', torch.ones(7), torch.ones(7))


@pytest.mark.parametrize('kwargs', [
    {'alpha_gain': 0.0},
    {'error_threshold': -0.1},
    {'window_size': 0},
    {'precision_bounds': {'motor_l1': (10.0, 1.0)}},
    {'precision_bounds': {'vision_l1': (1.0, 10.0)}},
])
def test_invalid_arguments(kwargs):
    with pytest.raises(ConfigurationError):
        PrecisionAdapter(**kwargs)
