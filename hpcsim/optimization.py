"""
Hyperparameter Search

Particle swarm optimization over named SimulationConfig fields. Each particle
is a candidate parameter vector; its fitness is the final player-target
distance plus a small free-energy penalty from a full simulation run.
"""

from dataclasses import fields
import logging

import numpy as np
from tqdm import tqdm

from .config import SimulationConfig
from .exceptions import ConfigurationError
from .model import InterceptionModel


logger = logging.getLogger(__name__)


FAILED_FITNESS = 1e6


def default_fitness(results):
    """final distance + 0.01 * mean combined free energy"""
    return results.final_distance + 0.01 * float(np.mean(results.free_energy_combined))


class ParticleSwarmOptimizer:
    """
    Particle swarm search over configuration parameters

    Args:
        base_config (SimulationConfig): Template configuration
        param_bounds (dict): Maps field name to (min, max)
        n_particles (int, optional): Swarm size. Defaults to 20.
        n_iterations (int, optional): Number of swarm updates. Defaults to 50.
        inertia_weight (float, optional): Velocity carry-over. Defaults to 0.7.
        cognitive_coeff (float, optional): Pull toward each particle's best. Defaults to 1.5.
        social_coeff (float, optional): Pull toward the swarm's best. Defaults to 1.5.
        fitness_fn (callable, optional): Maps SimulationResults to a score to minimize. Defaults to default_fitness.
        seed (int, optional): Seed for particle initialization and updates. Defaults to None.
    """

    def __init__(self, base_config, param_bounds, n_particles=20, n_iterations=50,
                 inertia_weight=0.7, cognitive_coeff=1.5, social_coeff=1.5,
                 fitness_fn=None, seed=None):
        if not param_bounds:
            raise ConfigurationError('param_bounds', "at least one parameter is required")

        known = {f.name for f in fields(SimulationConfig)}
        for name, (lo, hi) in param_bounds.items():
            if name not in known:
                raise ConfigurationError('param_bounds', f"unknown config field {name!r}")
            if not lo < hi:
                raise ConfigurationError('param_bounds', f"{name} needs min < max")

        self.base_config = base_config
        self.param_names = list(param_bounds)
        self.bounds = np.array([param_bounds[name] for name in self.param_names], dtype=float)
        self.n_particles = n_particles
        self.n_iterations = n_iterations
        self.inertia_weight = inertia_weight
        self.cognitive_coeff = cognitive_coeff
        self.social_coeff = social_coeff
        self.fitness_fn = fitness_fn if fitness_fn is not None else default_fitness
        self.rng = np.random.default_rng(seed)

        self.best_params = None
        self.best_fitness = np.inf
        self.fitness_history = []

    def initialize_particles(self):
        lo, hi = self.bounds[:, 0], self.bounds[:, 1]
        return lo + (hi - lo) * self.rng.random((self.n_particles, len(self.param_names)))

    def enforce_bounds(self, particles):
        return np.clip(particles, self.bounds[:, 0], self.bounds[:, 1])

    def vector_to_params(self, vector):
        params = {}
        for name, value in zip(self.param_names, vector):
            template = getattr(self.base_config, name)
            if isinstance(template, int) and not isinstance(template, bool):
                params[name] = int(round(value))
            else:
                params[name] = float(value)
        return params

    def create_config(self, vector):
        return self.base_config.replace(**self.vector_to_params(vector))

    def evaluate_fitness(self, vector):
        """
        Run one simulation for a parameter vector

        Invalid configurations and numerically failed runs score FAILED_FITNESS.

        Returns:
            float: Fitness (lower is better)
        """
        try:
            config = self.create_config(vector)
            results = InterceptionModel(config).run(progress=False)
            fitness = float(self.fitness_fn(results))
        except (ValueError, RuntimeError, FloatingPointError) as exc:
            logger.warning("Evaluation failed for %s: %s", self.vector_to_params(vector), exc)
            return FAILED_FITNESS

        if not np.isfinite(fitness):
            return FAILED_FITNESS
        return fitness

    def optimize(self, progress=True):
        """
        Run the swarm

        Args:
            progress (bool, optional): Show a tqdm progress bar. Defaults to True.

        Returns:
            tuple: (best_params dict, best_fitness float)
        """
        n_params = len(self.param_names)
        particles = self.initialize_particles()
        velocities = np.zeros_like(particles)

        personal_best = particles.copy()
        personal_best_fitness = np.full(self.n_particles, np.inf)
        global_best = particles[0].copy()
        global_best_fitness = np.inf
        self.fitness_history = []

        logger.info(
            "PSO over %s (%d particles, %d iterations)",
            ", ".join(self.param_names), self.n_particles, self.n_iterations,
        )

        for iteration in tqdm(range(self.n_iterations), desc="PSO", disable=not progress):
            for p in range(self.n_particles):
                fitness = self.evaluate_fitness(particles[p])

                if fitness < personal_best_fitness[p]:
                    personal_best_fitness[p] = fitness
                    personal_best[p] = particles[p]

                if fitness < global_best_fitness:
                    global_best_fitness = fitness
                    global_best = particles[p].copy()
                    logger.info("Iteration %d: new best fitness %.4f", iteration + 1, fitness)

            self.fitness_history.append(global_best_fitness)

            r1 = self.rng.random((self.n_particles, n_params))
            r2 = self.rng.random((self.n_particles, n_params))
            velocities = (
                self.inertia_weight * velocities
                + self.cognitive_coeff * r1 * (personal_best - particles)
                + self.social_coeff * r2 * (global_best - particles)
            )
            particles = self.enforce_bounds(particles + velocities)

        self.best_params = self.vector_to_params(global_best)
        self.best_fitness = global_best_fitness
        logger.info("Optimization complete. Best fitness: %.4f, params: %s", self.best_fitness, self.best_params)
        return self.best_params, self.best_fitness
