"""
Utilities for hpcsim

This module provides logging setup, visualization of simulation runs, and
prediction error statistics for predictive coding hierarchies.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec

from .hierarchy import as_vector


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level='INFO', log_file=None):
    """
    Attach console (and optional file) handlers to the hpcsim logger

    Args:
        level (str, optional): 'DEBUG', 'INFO', 'WARNING' or 'ERROR'. Defaults to 'INFO'.
        log_file (str, optional): Path of a log file. Defaults to None.

    Returns:
        logging.Logger: The configured package logger
    """
    logger = logging.getLogger('hpcsim')
    logger.setLevel(level.upper())
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def plot_trajectories(results, title='Player and Target Trajectories'):
    """
    Plot player and target paths in 3-D and their x/y/z components over time

    Args:
        results (SimulationResults): Output of InterceptionModel.run()
        title (str, optional): Figure title. Defaults to 'Player and Target Trajectories'.

    Returns:
        plt.Figure: Matplotlib figure with plots
    """
    fig = plt.figure(figsize=(14, 6))
    gs = GridSpec(3, 2, figure=fig)

    ax3d = fig.add_subplot(gs[:, 0], projection='3d')
    ax3d.plot(*results.player_pos.T, label='Player')
    ax3d.plot(*results.ball_pos.T, label='Target', linestyle='--')
    ax3d.scatter(*results.player_pos[0], marker='o')
    ax3d.scatter(*results.ball_pos[0], marker='x')
    ax3d.set_xlabel('x')
    ax3d.set_ylabel('y')
    ax3d.set_zlabel('z')
    ax3d.legend()

    for axis, name in enumerate('xyz'):
        ax = fig.add_subplot(gs[axis, 1])
        ax.plot(results.time, results.player_pos[:, axis], label='Player')
        ax.plot(results.time, results.ball_pos[:, axis], label='Target', linestyle='--')
        ax.set_ylabel(name)
        ax.grid(True)
        if axis == 0:
            ax.legend()
        if axis == 2:
            ax.set_xlabel('Time (s)')

    fig.suptitle(title)
    plt.tight_layout()
    return fig


def plot_free_energy(results, title='Free Energy'):
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(results.time, results.free_energy_motor, label='Motor')
    ax.plot(results.time, results.free_energy_plan, label='Planning')
    ax.plot(results.time, results.free_energy_combined, label='Combined', linestyle='--')
    ax.set_title(title)
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Free energy')
    ax.legend()
    ax.grid(True)
    plt.tight_layout()
    return fig


def plot_distance(results, title='Distance to Target', interception_radius=None):
    """
    Plot the player-target distance over time

    Args:
        results (SimulationResults): Output of InterceptionModel.run()
        title (str, optional): Plot title. Defaults to 'Distance to Target'.
        interception_radius (float, optional): Draws a reference line when given. Defaults to None.

    Returns:
        plt.Figure: Matplotlib figure with plot
    """
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(results.time, results.distance_to_target)
    if interception_radius is not None:
        ax.axhline(interception_radius, color='k', linestyle='--', linewidth=1)
    if results.interception_step is not None:
        ax.axvline(results.time[results.interception_step], color='g', linestyle=':')
    ax.set_title(title)
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Distance (m)')
    ax.grid(True)
    plt.tight_layout()
    return fig


def plot_precision_history(results, title='Mean Precision'):
    """
    Plot mean precision per channel (requires a run with adapt_precision=True)

    Returns:
        plt.Figure: Matplotlib figure with one subplot per channel
    """
    channels = sorted(results.precision_history)
    if not channels:
        raise ValueError("results carry no precision history; run with adapt_precision=True")

    fig, axes = plt.subplots(1, len(channels), figsize=(4 * len(channels), 4))
    if len(channels) == 1:
        axes = [axes]

    for ax, name in zip(axes, channels):
        ax.plot(results.time, results.precision_history[name])
        ax.set_title(name)
        ax.set_xlabel('Time (s)')
        ax.set_yscale('log')

    fig.suptitle(title)
    plt.tight_layout()
    return fig


def plot_training_curves(values, title='Best Fitness', xlabel='Iteration', ylabel='Fitness'):
    """
    Plot a scalar curve such as PSO fitness history

    Args:
        values (list): Sequence of values
        title (str, optional): Plot title. Defaults to 'Best Fitness'.

    Returns:
        plt.Figure: Matplotlib figure with plot
    """
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(values)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.grid(True)
    plt.tight_layout()
    return fig


def compute_error_statistics(hierarchy, observations):
    """
    Step a hierarchy through observations and summarize its prediction errors

    Args:
        hierarchy (PredictiveCodingHierarchy): Hierarchy to drive (it learns while stepping)
        observations (iterable): Sequence of observation vectors of length n1

    Returns:
        dict: Per-layer mean, std, min, max and median of the squared error
    """
    layer_errors = {'layer_1': [], 'layer_2': []}
    for observation in observations:
        hierarchy.step(as_vector(observation, hierarchy.config.n1))
        layer_errors['layer_1'].append(float((hierarchy.E1 ** 2).mean()))
        layer_errors['layer_2'].append(float((hierarchy.E2 ** 2).mean()))

    stats = {}
    for name, errors in layer_errors.items():
        if not errors:
            raise ValueError("observations must not be empty")
        errors = np.asarray(errors)
        stats[name] = {
            'mean': float(np.mean(errors)),
            'std': float(np.std(errors)),
            'min': float(np.min(errors)),
            'max': float(np.max(errors)),
            'median': float(np.median(errors)),
        }
    return stats
