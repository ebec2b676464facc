"""
Adaptive Precision

Precision is the confidence a hierarchy places in a prediction error. This
module turns a stream of per-channel RMS errors into bounded, smoothly
adapting precision multipliers: channels that are consistently accurate gain
precision, channels that are persistently wrong lose it.

Four channels are tracked (motor L1/L2 and planning L1/L2). They share one
circular write index so that their histories stay time-aligned; call
step_history() once per timestep after adapting every channel.
"""

import logging

import numpy as np
import torch

from .exceptions import ConfigurationError
from .state import DTYPE


logger = logging.getLogger(__name__)


CHANNELS = ('motor_l1', 'motor_l2', 'plan_l1', 'plan_l2')

DEFAULT_BOUNDS = {
    'motor_l1': (1.0, 500.0),
    'motor_l2': (0.1, 50.0),
    'plan_l1': (1.0, 500.0),
    'plan_l2': (0.1, 50.0),
}

MIN_FACTOR = 0.5
MAX_FACTOR = 2.0


class PrecisionChannel:
    """
    Rolling RMS error history and precision bounds for one channel

    Args:
        bounds (tuple): (min, max) precision
        window_size (int): Length of the circular history
    """

    def __init__(self, bounds, window_size):
        self.bounds = bounds
        self.history = np.zeros(window_size)
        self.samples = 0

    def record(self, index, rms):
        self.history[index] = rms
        self.samples = min(self.samples + 1, len(self.history))

    def smoothed_error(self):
        # During warm-up only the collected samples are averaged
        if self.samples == 0:
            return 0.0
        if self.samples < len(self.history):
            return float(np.mean(self.history[:self.samples]))
        return float(np.mean(self.history))

    def reset(self):
        self.history[:] = 0.0
        self.samples = 0


class PrecisionAdapter:
    """
    Error-driven precision adaptation for the motor and planning hierarchies

    Args:
        precision_bounds (dict, optional): Maps channel name to (min, max). Defaults to DEFAULT_BOUNDS.
        alpha_gain (float, optional): Adaptation rate. Defaults to 0.5.
        error_threshold (float, optional): Smoothed RMS error separating gain from loss. Defaults to 0.1.
        window_size (int, optional): Length of the error history. Defaults to 50.

    Only sensory-layer (L1) adaptations that change precision by more than 1% are
    counted in adaptation_count.
    """

    def __init__(self, precision_bounds=None, alpha_gain=0.5, error_threshold=0.1, window_size=50):
        if not alpha_gain > 0:
            raise ConfigurationError('alpha_gain', "must be positive")
        if not error_threshold >= 0:
            raise ConfigurationError('error_threshold', "must be non-negative")
        if isinstance(window_size, bool) or not isinstance(window_size, int) or window_size < 1:
            raise ConfigurationError('window_size', "must be a positive integer")

        bounds = dict(DEFAULT_BOUNDS)
        if precision_bounds:
            unknown = set(precision_bounds) - set(CHANNELS)
            if unknown:
                raise ConfigurationError('precision_bounds', f"unknown channels {sorted(unknown)}")
            bounds.update(precision_bounds)

        self.alpha_gain = alpha_gain
        self.error_threshold = error_threshold
        self.window_size = window_size
        self.channels = {}
        for name in CHANNELS:
            lo, hi = (float(b) for b in bounds[name])
            if not 0 < lo <= hi:
                raise ConfigurationError('precision_bounds', f"{name} bounds must satisfy 0 < min <= max")
            self.channels[name] = PrecisionChannel((lo, hi), window_size)

        self.history_idx = 0
        self.adaptation_count = {'motor': 0, 'plan': 0}

    def adaptation_factor(self, smoothed_error):
        """Multiplicative precision change for a smoothed error, clamped to [0.5, 2.0]"""
        if smoothed_error < self.error_threshold:
            factor = 1 + self.alpha_gain * (self.error_threshold - smoothed_error)
        else:
            factor = 1 - self.alpha_gain * (smoothed_error - self.error_threshold)
        return max(MIN_FACTOR, min(MAX_FACTOR, factor))

    def adapt(self, channel, pi_current, error):
        """
        Adapt one channel's precision from its latest prediction error

        Args:
            channel (str): One of 'motor_l1', 'motor_l2', 'plan_l1', 'plan_l2'
            pi_current (array-like): Current precision vector
            error (array-like): Latest prediction error vector

        Returns:
            torch.Tensor: New precision, clamped to the channel bounds
        """
        if channel not in self.channels:
            raise KeyError(f"unknown precision channel {channel!r}")
        state = self.channels[channel]

        error = torch.nan_to_num(torch.as_tensor(error, dtype=DTYPE), nan=0.0)
        rms = float(torch.sqrt(torch.mean(error ** 2)))
        state.record(self.history_idx, rms)

        factor = self.adaptation_factor(state.smoothed_error())
        if channel.endswith('_l1') and abs(factor - 1.0) > 0.01:
            self.adaptation_count[channel.split('_')[0]] += 1

        lo, hi = state.bounds
        pi_current = torch.as_tensor(pi_current, dtype=DTYPE)
        return torch.clamp(pi_current * factor, lo, hi)

    def adapt_motor_l1(self, pi_current, error):
        return self.adapt('motor_l1', pi_current, error)

    def adapt_motor_l2(self, pi_current, error):
        return self.adapt('motor_l2', pi_current, error)

    def adapt_planning_l1(self, pi_current, error):
        return self.adapt('plan_l1', pi_current, error)

    def adapt_planning_l2(self, pi_current, error):
        return self.adapt('plan_l2', pi_current, error)

    def step_history(self):
        """Advance the shared circular-buffer index (once per timestep)"""
        self.history_idx = (self.history_idx + 1) % self.window_size

    def reset(self):
        """Clear histories and counters, e.g. between trials"""
        for state in self.channels.values():
            state.reset()
        self.history_idx = 0
        self.adaptation_count = {'motor': 0, 'plan': 0}
        logger.debug("precision adapter reset")

    def get_statistics(self):
        """
        Adaptation statistics for monitoring

        Returns:
            dict: Adaptation counts per hierarchy and mean error per channel
        """
        stats = {
            'motor_adaptations': self.adaptation_count['motor'],
            'plan_adaptations': self.adaptation_count['plan'],
        }
        for name, state in self.channels.items():
            if state.samples > 0:
                stats[f'{name}_error_mean'] = float(np.mean(state.history[:state.samples]))
            else:
                stats[f'{name}_error_mean'] = 0.0
        return stats
