"""
Hierarchy State Containers

This module holds the numeric state of one predictive coding hierarchy:
the immutable configuration, the per-timestep layer state (representations,
predictions and errors) and the generative weights with their momentum buffers.
The containers carry no update logic; see hpcsim.hierarchy for the dynamics.
"""

from dataclasses import dataclass
import math

import torch
import torch.nn as nn

from .exceptions import ConfigurationError


DTYPE = torch.float32


@dataclass(frozen=True)
class HierarchyConfig:
    """
    Configuration of a three-layer predictive coding hierarchy

    Args:
        n1 (int): Width of the sensory layer (L1)
        n2 (int): Width of the middle layer (L2)
        n3 (int): Width of the top layer (L3)
        eta_rep (float): Representation learning rate
        eta_W (float): Weight learning rate
        momentum (float): Momentum coefficient in [0, 1)
        weight_decay (float): L2 regularization coefficient, W -= weight_decay * W each step
        max_weight_value (float): Nominal ceiling on weight magnitude (diagnostic only)
        max_precision_value (float): Ceiling applied to precision vectors
        max_error_value (float): Prediction errors are clipped to +/- this value
        pi1_init (float, optional): Initial L1 precision. Defaults to 10.0.
        pi2_init (float, optional): Initial L2 precision. Defaults to 1.0.
        rep_clip (float, optional): Representations are clipped to +/- this value. Defaults to 10.0.
    """

    n1: int = 7
    n2: int = 20
    n3: int = 10
    eta_rep: float = 0.01
    eta_W: float = 0.001
    momentum: float = 0.9
    weight_decay: float = 1e-4
    max_weight_value: float = 100.0
    max_precision_value: float = 500.0
    max_error_value: float = 10.0
    pi1_init: float = 10.0
    pi2_init: float = 1.0
    rep_clip: float = 10.0

    def __post_init__(self):
        self.validate()

    def validate(self):
        for name in ("n1", "n2", "n3"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(name, f"layer width must be a positive integer, got {value!r}")

        for name in ("eta_rep", "eta_W"):
            if not getattr(self, name) > 0:
                raise ConfigurationError(name, "learning rate must be positive")

        if not 0.0 <= self.momentum < 1.0:
            raise ConfigurationError("momentum", "must lie in [0, 1)")

        if not self.weight_decay >= 0:
            raise ConfigurationError("weight_decay", "must be non-negative")

        for name in ("max_weight_value", "max_precision_value", "max_error_value", "rep_clip"):
            if not getattr(self, name) > 0:
                raise ConfigurationError(name, "safety ceiling must be positive")

        for name in ("pi1_init", "pi2_init"):
            value = getattr(self, name)
            if not 0 < value <= self.max_precision_value:
                raise ConfigurationError(name, f"initial precision must lie in (0, {self.max_precision_value}]")


class LayerState:
    """
    Representations, predictions and errors of one hierarchy instance

    All vectors are 1-D float32 tensors and start at zero.

    Args:
        n1 (int): Width of L1
        n2 (int): Width of L2
        n3 (int): Width of L3
    """

    def __init__(self, n1, n2, n3):
        self.R1 = torch.zeros(n1, dtype=DTYPE)
        self.R2 = torch.zeros(n2, dtype=DTYPE)
        self.R3 = torch.zeros(n3, dtype=DTYPE)

        # pred2 is L3's prediction of L2, pred1 is L2's prediction of L1
        self.pred2 = torch.zeros(n2, dtype=DTYPE)
        self.pred1 = torch.zeros(n1, dtype=DTYPE)

        self.E2 = torch.zeros(n2, dtype=DTYPE)
        self.E1 = torch.zeros(n1, dtype=DTYPE)

    def snapshot(self):
        """Return a dict of cloned tensors"""
        return {
            'R1': self.R1.clone(),
            'R2': self.R2.clone(),
            'R3': self.R3.clone(),
            'pred1': self.pred1.clone(),
            'pred2': self.pred2.clone(),
            'E1': self.E1.clone(),
            'E2': self.E2.clone(),
        }

    def load(self, snapshot):
        """
        Restore representations from a snapshot

        Only R1, R2 and R3 are restored; predictions and errors are recomputed
        on the next step anyway.

        Args:
            snapshot (dict): Mapping produced by snapshot() or get_state()
        """
        for key in ('R1', 'R2', 'R3'):
            current = getattr(self, key)
            value = torch.as_tensor(snapshot[key], dtype=DTYPE).reshape(-1)
            if value.shape != current.shape:
                raise ValueError(f"{key} must have shape {tuple(current.shape)}, got {tuple(value.shape)}")
            setattr(self, key, value.clone())


class WeightSet:
    """
    Generative weights of one hierarchy with their momentum buffers

    W32 (n2 x n3) maps L3 to its prediction of L2, W21 (n1 x n2) maps L2 to its
    prediction of L1. The transposes are exposed as views, so they always
    agree with the weights no matter how the weights were mutated.

    Args:
        W32 (torch.Tensor): Level-3 to level-2 weights
        W21 (torch.Tensor): Level-2 to level-1 weights
        dW32_prev (torch.Tensor, optional): Previous W32 step. Defaults to zeros.
        dW21_prev (torch.Tensor, optional): Previous W21 step. Defaults to zeros.
    """

    def __init__(self, W32, W21, dW32_prev=None, dW21_prev=None):
        if W32.dim() != 2 or W21.dim() != 2:
            raise ValueError("weight matrices must be 2-D")
        if W21.shape[1] != W32.shape[0]:
            raise ValueError(
                f"W21 columns ({W21.shape[1]}) must match W32 rows ({W32.shape[0]})"
            )

        self.W32 = W32.to(DTYPE)
        self.W21 = W21.to(DTYPE)
        self.dW32_prev = torch.zeros_like(self.W32) if dW32_prev is None else dW32_prev.to(DTYPE)
        self.dW21_prev = torch.zeros_like(self.W21) if dW21_prev is None else dW21_prev.to(DTYPE)

        if self.dW32_prev.shape != self.W32.shape or self.dW21_prev.shape != self.W21.shape:
            raise ValueError("momentum buffers must match their weight shapes")

    @classmethod
    def xavier(cls, n1, n2, n3):
        """
        Create a weight set with Xavier-normal weights and zero momentum

        Element standard deviation is sqrt(2 / (fan_in + fan_out)).

        Args:
            n1 (int): Width of L1
            n2 (int): Width of L2
            n3 (int): Width of L3

        Returns:
            WeightSet: Freshly initialized weights
        """
        W32 = torch.empty(n2, n3, dtype=DTYPE)
        W21 = torch.empty(n1, n2, dtype=DTYPE)
        nn.init.xavier_normal_(W32)
        nn.init.xavier_normal_(W21)
        return cls(W32, W21)

    @staticmethod
    def xavier_std(fan_in, fan_out):
        return math.sqrt(2.0 / (fan_in + fan_out))

    @property
    def W32_T(self):
        return self.W32.T

    @property
    def W21_T(self):
        return self.W21.T

    def clone(self):
        """Deep copy of weights and momentum buffers"""
        return WeightSet(
            self.W32.clone(),
            self.W21.clone(),
            self.dW32_prev.clone(),
            self.dW21_prev.clone(),
        )

    def max_abs(self):
        """Largest absolute weight across both matrices"""
        return max(self.W32.abs().max().item(), self.W21.abs().max().item())

    def equals(self, other):
        """Exact equality of weights and momentum"""
        return (
            torch.equal(self.W32, other.W32)
            and torch.equal(self.W21, other.W21)
            and torch.equal(self.dW32_prev, other.dW32_prev)
            and torch.equal(self.dW21_prev, other.dW21_prev)
        )
