"""
Sensory Channel

Observation noise and visuomotor delay. The hierarchies never see these
mechanics; they only receive the perturbed, lagged observation vectors.
"""

import numpy as np


class NoiseGenerator:
    """
    Additive sensory noise

    Args:
        noise_type (str, optional): 'gaussian', 'uniform', 'salt_and_pepper' or 'none'. Defaults to 'gaussian'.
        seed (int, optional): Seed for reproducible noise. Defaults to None.
    """

    SPIKE_PROBABILITY = 0.01
    SPIKE_SCALE = 5.0

    def __init__(self, noise_type='gaussian', seed=None):
        if noise_type not in ('gaussian', 'uniform', 'salt_and_pepper', 'none'):
            raise ValueError(f"Unknown noise type: {noise_type}")
        self.noise_type = noise_type
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def add_noise(self, observation, noise_std):
        """
        Return a noisy copy of an observation

        Args:
            observation (array-like): Clean observation
            noise_std (float): Noise scale (standard deviation for gaussian, half-width for uniform)

        Returns:
            np.ndarray: Perturbed observation
        """
        observation = np.array(observation, dtype=float)
        if noise_std <= 0 or self.noise_type == 'none':
            return observation

        if self.noise_type == 'gaussian':
            return observation + self.rng.normal(0.0, noise_std, size=observation.shape)

        if self.noise_type == 'uniform':
            return observation + self.rng.uniform(-noise_std, noise_std, size=observation.shape)

        # salt_and_pepper: occasional large spikes
        mask = self.rng.random(observation.shape) < self.SPIKE_PROBABILITY
        observation[mask] += self.rng.normal(0.0, noise_std * self.SPIKE_SCALE, size=int(mask.sum()))
        return observation

    def add_position_noise(self, position, noise_std):
        return self.add_noise(position, noise_std)

    def add_velocity_noise(self, velocity, noise_std):
        return self.add_noise(velocity, noise_std)


class DelayBuffer:
    """
    Circular buffer that returns samples with a fixed lag

    read() returns the sample pushed delay_steps pushes ago; until that many
    samples exist it returns the oldest one available.

    Args:
        delay_steps (int): Lag in timesteps (0 means no delay)
        width (int): Length of each sample vector
    """

    def __init__(self, delay_steps, width):
        if delay_steps < 0:
            raise ValueError("delay_steps must be non-negative")
        self.delay_steps = int(delay_steps)
        self.width = width
        self.buffer = np.zeros((self.delay_steps + 1, width))
        self.write_idx = 0
        self.count = 0

    @classmethod
    def from_latency(cls, latency_ms, dt, width):
        return cls(int(round(latency_ms / 1000.0 / dt)), width)

    def push(self, sample):
        sample = np.asarray(sample, dtype=float).reshape(-1)
        if sample.size != self.width:
            raise ValueError(f"sample must have {self.width} elements, got {sample.size}")
        self.buffer[self.write_idx] = sample
        self.write_idx = (self.write_idx + 1) % len(self.buffer)
        self.count = min(self.count + 1, len(self.buffer))

    def read(self):
        if self.count == 0:
            raise IndexError("read from an empty delay buffer")
        # Oldest slot once full, otherwise the first slot written
        idx = self.write_idx if self.count == len(self.buffer) else 0
        return self.buffer[idx].copy()

    def push_and_read(self, sample):
        self.push(sample)
        return self.read()

    def reset(self):
        self.buffer[:] = 0.0
        self.write_idx = 0
        self.count = 0
