"""
Predictive Coding Hierarchy

This module implements the inference and learning engine shared by every
hierarchy in the simulation. Each timestep the top layers predict the layers
below them, precision-weighted prediction errors are computed, and both the
representations and the generative weights are nudged to reduce those errors.

The update rules are plain functions over (config, state, weights, precision).
PredictiveCodingHierarchy owns one instance of that state and delegates
variant-specific behavior to an optional HierarchyPolicy.
"""

import logging

import torch

from .state import DTYPE, LayerState, WeightSet


logger = logging.getLogger(__name__)


def as_vector(values, size, name="observation"):
    """
    Convert array-like input to a float32 vector of the expected length

    Args:
        values (array-like): Input values (list, numpy array or tensor)
        size (int): Expected number of elements
        name (str, optional): Name used in the error message. Defaults to "observation".

    Returns:
        torch.Tensor: 1-D float32 tensor
    """
    vector = torch.as_tensor(values, dtype=DTYPE).reshape(-1)
    if vector.numel() != size:
        raise ValueError(f"{name} must have {size} elements, got {vector.numel()}")
    return vector


def clip_errors(errors, max_error_value):
    # clamp() passes NaN through, so zero it first
    errors = torch.nan_to_num(errors, nan=0.0)
    return torch.clamp(errors, -max_error_value, max_error_value)


def predict(state, weights):
    """Top-down predictions: pred2 = R3 W32^T, pred1 = R2 W21^T"""
    state.pred2 = state.R3 @ weights.W32_T
    state.pred1 = state.R2 @ weights.W21_T


def compute_errors(config, state, observation):
    """
    Compute and clip the prediction errors at L1 and L2

    Args:
        config (HierarchyConfig): Hierarchy configuration
        state (LayerState): State to update in place
        observation (torch.Tensor): Sensory input of length n1
    """
    state.E1 = clip_errors(observation - state.pred1, config.max_error_value)
    state.E2 = clip_errors(state.R2 - state.pred2, config.max_error_value)


def update_representations(config, state, weights, pi1, pi2, update_sensory=True):
    """
    Move each layer along its precision-weighted prediction errors

    L1 integrates its own weighted error, L2 combines the bottom-up error
    propagated through W21^T with its own weighted error, and L3 integrates
    the L2 error propagated through W32^T. All layers are clipped afterwards.

    Args:
        config (HierarchyConfig): Hierarchy configuration
        state (LayerState): State to update in place
        weights (WeightSet): Current generative weights
        pi1 (torch.Tensor): L1 precision
        pi2 (torch.Tensor): L2 precision
        update_sensory (bool, optional): Whether R1 integrates its error. Defaults to True.
    """
    weighted1 = pi1 * state.E1
    weighted2 = pi2 * state.E2

    R1 = state.R1 + config.eta_rep * weighted1 if update_sensory else state.R1
    bottom_up = weights.W21_T @ weighted1
    R2 = state.R2 + config.eta_rep * (bottom_up + weighted2)
    R3 = state.R3 + config.eta_rep * (weights.W32_T @ weighted2)

    limit = config.rep_clip
    state.R1 = torch.clamp(R1, -limit, limit)
    state.R2 = torch.clamp(R2, -limit, limit)
    state.R3 = torch.clamp(R3, -limit, limit)


def update_weights(config, state, weights):
    """
    Momentum-smoothed Hebbian update of the generative weights

    dW = momentum * dW_prev + (1 - momentum) * eta_W * outer(E, R), then
    W += dW - weight_decay * W. The blended step becomes the new momentum.

    Args:
        config (HierarchyConfig): Hierarchy configuration
        state (LayerState): Current state (errors and representations)
        weights (WeightSet): Weights to update in place
    """
    m = config.momentum

    dW21 = config.eta_W * torch.outer(state.E1, state.R2)
    dW32 = config.eta_W * torch.outer(state.E2, state.R3)

    dW21 = m * weights.dW21_prev + (1 - m) * dW21
    dW32 = m * weights.dW32_prev + (1 - m) * dW32

    weights.W21 = weights.W21 + dW21 - config.weight_decay * weights.W21
    weights.W32 = weights.W32 + dW32 - config.weight_decay * weights.W32

    weights.dW21_prev = dW21
    weights.dW32_prev = dW32


def free_energy(state):
    """Sum of squared representations across all three layers"""
    return float(
        torch.sum(state.R1 ** 2) + torch.sum(state.R2 ** 2) + torch.sum(state.R3 ** 2)
    )


class HierarchyPolicy:
    """
    Hooks through which a variant customizes the shared engine

    The default implementation is a no-op. Subclasses override only what
    they need.
    """

    # When False, update_representations leaves R1 to the policy
    updates_sensory_layer = True

    def bind(self, hierarchy):
        """Called once when the policy is attached to a hierarchy"""

    def before_step(self, hierarchy, observation):
        """Called at the start of step(), before predictions are made"""

    def after_predict(self, hierarchy):
        """Called after every predict()"""

    def after_weight_update(self, hierarchy):
        """Called after every non-frozen weight update"""


class PredictiveCodingHierarchy:
    """
    Three-layer predictive coding hierarchy

    Owns the layer state, the working weight set and the precision vectors.
    The hierarchy is either LEARNING or FROZEN; both states predict and
    compute errors, only representation and weight updates are gated.

    Args:
        config (HierarchyConfig): Dimensions, learning rates and safety bounds
        name (str, optional): Identifier used in logs. Defaults to 'hierarchy'.
        policy (HierarchyPolicy, optional): Variant-specific hooks. Defaults to None.
        weights (WeightSet, optional): Initial weights. Defaults to Xavier initialization.
    """

    def __init__(self, config, name='hierarchy', policy=None, weights=None):
        self.config = config
        self.name = name
        self.frozen = False

        self.state = LayerState(config.n1, config.n2, config.n3)
        if weights is None:
            weights = WeightSet.xavier(config.n1, config.n2, config.n3)
        self._check_weight_shapes(weights)
        self.weights = weights

        self.pi1 = torch.full((config.n1,), config.pi1_init, dtype=DTYPE)
        self.pi2 = torch.full((config.n2,), config.pi2_init, dtype=DTYPE)

        self.policy = policy if policy is not None else HierarchyPolicy()
        self.policy.bind(self)

        logger.info("%s hierarchy initialized (%dx%dx%d)", name, config.n1, config.n2, config.n3)

    def _check_weight_shapes(self, weights):
        c = self.config
        if tuple(weights.W32.shape) != (c.n2, c.n3):
            raise ValueError(f"W32 must have shape ({c.n2}, {c.n3}), got {tuple(weights.W32.shape)}")
        if tuple(weights.W21.shape) != (c.n1, c.n2):
            raise ValueError(f"W21 must have shape ({c.n1}, {c.n2}), got {tuple(weights.W21.shape)}")

    def load_weights(self, weights):
        """Replace the working weight set (shapes must match the config)"""
        self._check_weight_shapes(weights)
        self.weights = weights

    # ------------------------------------------------------------------
    # Inference and learning
    # ------------------------------------------------------------------

    def predict(self):
        """Generate top-down predictions for L2 and L1"""
        predict(self.state, self.weights)
        self.policy.after_predict(self)

    def compute_errors(self, observation):
        """
        Compute prediction errors against a sensory observation

        Args:
            observation (array-like): Sensory input of length n1
        """
        observation = as_vector(observation, self.config.n1)
        compute_errors(self.config, self.state, observation)

    def update_representations(self):
        if self.frozen:
            return
        update_representations(
            self.config, self.state, self.weights, self.pi1, self.pi2,
            update_sensory=self.policy.updates_sensory_layer,
        )

    def update_weights(self):
        if self.frozen:
            return
        update_weights(self.config, self.state, self.weights)
        self.policy.after_weight_update(self)

    def compute_free_energy(self):
        """
        Diagnostic energy of the hierarchy

        Returns:
            float: Sum of squared representations over L1, L2 and L3
        """
        return free_energy(self.state)

    def step(self, observation):
        """
        Run one full timestep: predict, compute errors, update representations and weights

        Args:
            observation (array-like): Sensory input of length n1
        """
        observation = as_vector(observation, self.config.n1)
        self.policy.before_step(self, observation)
        self.predict()
        compute_errors(self.config, self.state, observation)
        self.update_representations()
        self.update_weights()

    def freeze(self):
        """Stop representation and weight updates"""
        self.frozen = True
        logger.debug("%s hierarchy frozen", self.name)

    def unfreeze(self):
        """Resume representation and weight updates"""
        self.frozen = False
        logger.debug("%s hierarchy unfrozen", self.name)

    # ------------------------------------------------------------------
    # Precision
    # ------------------------------------------------------------------

    def set_precision(self, pi1=None, pi2=None):
        """
        Replace precision vectors, clamped to (0, max_precision_value]

        Args:
            pi1 (array-like or float, optional): New L1 precision. Defaults to None (unchanged).
            pi2 (array-like or float, optional): New L2 precision. Defaults to None (unchanged).
        """
        ceiling = self.config.max_precision_value
        floor = torch.finfo(DTYPE).tiny
        if pi1 is not None:
            pi1 = torch.as_tensor(pi1, dtype=DTYPE).expand(self.config.n1)
            self.pi1 = torch.clamp(pi1, floor, ceiling).clone()
        if pi2 is not None:
            pi2 = torch.as_tensor(pi2, dtype=DTYPE).expand(self.config.n2)
            self.pi2 = torch.clamp(pi2, floor, ceiling).clone()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def get_state(self):
        """
        Snapshot of the current state for logging or visualization

        Returns:
            dict: Cloned representations, predictions, errors, precisions and free energy
        """
        snapshot = self.state.snapshot()
        snapshot['pi1'] = self.pi1.clone()
        snapshot['pi2'] = self.pi2.clone()
        snapshot['FE'] = self.compute_free_energy()
        return snapshot

    def set_state(self, snapshot):
        """Restore representations from a snapshot"""
        self.state.load(snapshot)

    @property
    def R1(self):
        return self.state.R1

    @property
    def R2(self):
        return self.state.R2

    @property
    def R3(self):
        return self.state.R3

    @property
    def pred1(self):
        return self.state.pred1

    @property
    def pred2(self):
        return self.state.pred2

    @property
    def E1(self):
        return self.state.E1

    @property
    def E2(self):
        return self.state.E2

    @property
    def W32(self):
        return self.weights.W32

    @property
    def W21(self):
        return self.weights.W21

    @property
    def W32_T(self):
        return self.weights.W32_T

    @property
    def W21_T(self):
        return self.weights.W21_T
