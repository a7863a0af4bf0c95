#!/usr/bin/env python
"""
Lotka-Volterra equation discovery with a universal differential equation.

Trains a hybrid model (known linear growth/decay plus an RBF network) on
noisy short-horizon data, distils the network into a sparse symbolic model,
and simulates the recovered dynamics far beyond the training window.

Usage:
    python scripts/discover_lotka_volterra.py --noise 5e-3 --output results/scenario_1.json
    python scripts/discover_lotka_volterra.py --adam-iters 50 --lbfgs-iters 100 --verbose
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

# Add project source to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from ude_sindy import DiscoveryConfig, IntegrationError, run_discovery
from ude_sindy.baselines import PYSINDY_AVAILABLE, fit_pysindy_baseline
from ude_sindy.metrics import compute_pointwise_l2_error
from ude_sindy.utils import format_equation


def summarize(result, failure=None) -> dict:
    """JSON-serialisable summary of a discovery run."""
    summary = {
        "config": result.config.to_dict(),
        "initial_parameters": result.training.theta_initial.tolist(),
        "trained_parameters": result.training.theta.tolist(),
        "losses": result.training.loss_trace.values.tolist(),
        "final_loss": result.training.final_loss,
        "converged": result.training.converged,
        "metrics": result.metrics,
        "models": {},
    }
    if failure is not None:
        summary["failure"] = str(failure)
    for name, model in result.models.items():
        sweep = result.sweeps[name]
        summary["models"][name] = {
            "threshold": model.threshold,
            "error": model.error,
            "score": model.score,
            "equations": model.equations(),
            "active_terms": {str(k): v for k, v in model.active_terms().items()},
            "sweep_thresholds": sweep.thresholds.tolist(),
            "sweep_errors": sweep.errors.tolist(),
            "sweep_n_active": sweep.n_active.tolist(),
        }
    if result.extrapolation is not None:
        summary["long_estimate"] = result.extrapolation.x.tolist()
        summary["long_solution"] = result.true_extrapolation.x.tolist()
        summary["long_t"] = result.extrapolation.t.tolist()
        summary["long_pointwise_error"] = compute_pointwise_l2_error(
            result.extrapolation.x, result.true_extrapolation.x
        ).tolist()
    return summary


def main():
    parser = argparse.ArgumentParser(description="UDE + sparse regression on Lotka-Volterra")
    parser.add_argument("--config", type=str, default=None, help="JSON file with a DiscoveryConfig")
    parser.add_argument("--noise", type=float, default=None, help="Relative noise magnitude")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--adam-iters", type=int, default=None, help="Stage 1 (Adam) iterations")
    parser.add_argument("--lbfgs-iters", type=int, default=None, help="Stage 2 (L-BFGS) iterations")
    parser.add_argument(
        "--sensitivity", choices=["direct", "adjoint"], default=None,
        help="Gradient computation through the ODE solve",
    )
    parser.add_argument(
        "--recovery-target", choices=["network", "ideal"], default=None,
        help="Which sparse model drives the recovered dynamics",
    )
    parser.add_argument("--compare-pysindy", action="store_true", help="Also fit the PySINDy baseline")
    parser.add_argument("--output", type=str, default=None, help="Write a JSON summary here")
    parser.add_argument("--verbose", action="store_true", help="Log training progress")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    if args.config:
        with open(args.config) as f:
            config = DiscoveryConfig.from_dict(json.load(f))
    else:
        config = DiscoveryConfig()
    if args.noise is not None:
        config.noise_magnitude = args.noise
    if args.seed is not None:
        config.seed = args.seed
    if args.adam_iters is not None:
        config.trainer.adam_iterations = args.adam_iters
    if args.lbfgs_iters is not None:
        config.trainer.lbfgs_iterations = args.lbfgs_iters
    if args.sensitivity is not None:
        config.integrator.sensitivity = args.sensitivity
    if args.recovery_target is not None:
        config.recovery_target = args.recovery_target

    print("=" * 60)
    print("UDE-SINDy: Lotka-Volterra")
    print("=" * 60)
    print(f"Noise magnitude: {config.noise_magnitude}")
    print(
        f"Budgets: {config.trainer.adam_iterations} Adam + "
        f"{config.trainer.lbfgs_iterations} L-BFGS iterations"
    )

    failure = None
    try:
        result = run_discovery(config)
    except IntegrationError as e:
        print(f"\nIntegration failed during {e.stage}: {e.message}")
        if e.parameters is not None:
            print(f"Parameters at failure: {np.array2string(e.parameters, precision=4)}")
        if e.partial_result is None:
            sys.exit(1)
        # Report the trained network and selected models anyway
        result, failure = e.partial_result, e

    training = result.training
    print(
        f"\nFinal training loss after {len(training.loss_trace)} iterations: "
        f"{training.final_loss:.6g}"
    )

    for name, model in result.models.items():
        print(f"\n{name} problem (threshold={model.threshold:.3g}, {model.n_active} active terms):")
        for line in model.equations():
            print(f"  {line}")

    if args.compare_pysindy:
        if not PYSINDY_AVAILABLE:
            print("\nWarning: PySINDy not available. Install with: pip install pysindy")
        else:
            threshold = result.models["network"].threshold
            xi, _ = fit_pysindy_baseline(
                result.reconstruction.x, result.network_targets, threshold=threshold,
                poly_order=config.library.poly_order,
                include_sine="sin" in config.library.transcendental,
            )
            print(f"\nPySINDy baseline on the network problem (threshold={threshold:.3g}):")
            names = result.library.names
            if xi.shape[0] == len(names):
                for j in range(xi.shape[1]):
                    print(f"  U{j + 1} = {format_equation(xi[:, j], names)}")
            else:
                print(f"  {np.count_nonzero(xi)} active terms")

    print("\nMetrics:")
    for key, value in result.metrics.items():
        print(f"  {key}: {value:.4g}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(summarize(result, failure), f, indent=2)
        print(f"\nResults saved to {output_path}")

    if failure is not None:
        sys.exit(1)


if __name__ == "__main__":
    main()
