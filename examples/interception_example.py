"""
Interception Example for hpcsim

This script runs a full interception simulation with the motor and planning
hierarchies and saves trajectory, free energy and distance plots.
"""

import argparse
import os
import sys

import matplotlib
matplotlib.use('Agg')

# Add parent directory to path to import hpcsim
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hpcsim.config import SimulationConfig
from hpcsim.model import InterceptionModel
from hpcsim.utils import (
    plot_distance,
    plot_free_energy,
    plot_precision_history,
    plot_trajectories,
    setup_logging,
)


def build_config(args):
    """
    Build a simulation configuration from command line arguments

    A config file, when given, provides the base values; explicit flags override it.

    Args:
        args (argparse.Namespace): Parsed arguments

    Returns:
        SimulationConfig: Validated configuration
    """
    config = SimulationConfig.from_file(args.config) if args.config else SimulationConfig()

    overrides = {
        'n_trials': args.trials,
        'T_per_trial': args.trial_time,
        'visual_latency_ms': args.latency,
        'seed': args.seed,
        'log_level': args.log_level,
    }
    if args.noise > 0:
        overrides.update(noise_type='gaussian', position_noise_std=args.noise, velocity_noise_std=args.noise)
    if args.adapt_precision:
        overrides['adapt_precision'] = True
    if args.ballistic:
        overrides['target_dynamics'] = 'ballistic'
    return config.replace(**overrides)


def main():
    # Parse command line arguments
    parser = argparse.ArgumentParser(description='hpcsim Interception Example')
    parser.add_argument('--config', type=str, default=None, help='YAML or JSON config file')
    parser.add_argument('--trials', type=int, default=3, help='Number of trials (tasks)')
    parser.add_argument('--trial-time', type=float, default=20.0, help='Duration of each trial in seconds')
    parser.add_argument('--latency', type=float, default=0.0, help='Visual latency in milliseconds')
    parser.add_argument('--noise', type=float, default=0.0, help='Gaussian sensory noise standard deviation')
    parser.add_argument('--adapt-precision', action='store_true', help='Enable adaptive precision')
    parser.add_argument('--ballistic', action='store_true', help='Let the target fall and bounce under gravity')
    parser.add_argument('--seed', type=int, default=42, help='Random seed')
    parser.add_argument('--log-level', type=str, default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    parser.add_argument('--output-dir', type=str, default='.', help='Directory for saved figures')
    args = parser.parse_args()

    setup_logging(args.log_level)
    config = build_config(args)

    model = InterceptionModel(config)
    results = model.run()

    os.makedirs(args.output_dir, exist_ok=True)
    plot_trajectories(results).savefig(os.path.join(args.output_dir, 'interception_trajectories.png'))
    plot_free_energy(results).savefig(os.path.join(args.output_dir, 'interception_free_energy.png'))
    plot_distance(results, interception_radius=config.interception_radius).savefig(
        os.path.join(args.output_dir, 'interception_distance.png')
    )
    if config.adapt_precision:
        plot_precision_history(results).savefig(os.path.join(args.output_dir, 'interception_precision.png'))

    print(f"Final distance: {results.final_distance:.3f} m")
    print(f"Mean distance: {results.mean_distance:.3f} m")
    if results.interception_success:
        print(f"Intercepted at t={results.time[results.interception_step]:.2f}s")
    else:
        print("Target not intercepted")
    print(f"Saved visualizations to {args.output_dir}")


if __name__ == '__main__':
    main()
