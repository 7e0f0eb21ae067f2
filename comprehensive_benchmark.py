"""
Comprehensive Benchmark: All Strategies vs True Optimum

Compares 5 configurations on the same synthetic instances:
1. Auto (threshold-based strategy selection, the production path)
2. Greedy (ratio-sorted fill)
3. Core (exact DP on the dense core, greedy tail)
4. FPTAS (value-scaled DP, epsilon = 0.1)
5. Exact (weight-indexed DP with arena path reconstruction)

All configurations are evaluated by VALUE RATIO:
- For each instance: value_ratio = plan_value / optimal_value
- 1.0 = optimal, FPTAS must stay >= 0.9

Plots are written to comprehensive_results/.
"""

import argparse
import os
import time
import numpy as np
from typing import Dict, List, Optional
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from arena_pool import ArenaPool
from constrained_problem import create_planning_problem
from evaluation_metrics import PlanMetrics, reference_optimum
from order_selection import OptimizerConfig, Strategy, select_orders_for_delivery


LABELS = ['auto', 'greedy', 'core', 'fptas', 'exact']
STRATEGIES = {
    'auto': None,
    'greedy': Strategy.GREEDY,
    'core': Strategy.CORE,
    'fptas': Strategy.FPTAS,
    'exact': Strategy.EXACT,
}
COLORS = ['gray', 'orange', 'green', 'purple', 'darkblue']


class ComprehensiveBenchmark:
    """Run every strategy on shared instances and compare against the optimum."""

    def __init__(self,
                 num_problems: int = 5,
                 sizes: Optional[List[int]] = None,
                 capacity: int = 300,
                 seed: int = 42,
                 output_dir: str = "comprehensive_results",
                 config: Optional[OptimizerConfig] = None):
        """
        Initialize benchmark.

        Args:
            num_problems: Instances per size
            sizes: Order counts to benchmark
            capacity: Robot capacity for every instance
            seed: Random seed
            output_dir: Directory for plots
            config: Optimizer tunables shared by all runs
        """
        self.num_problems = num_problems
        self.sizes = sizes or [10, 40, 80, 150]
        self.capacity = capacity
        self.seed = seed
        self.output_dir = output_dir
        self.config = config or OptimizerConfig()
        self.pool = ArenaPool()
        self.metrics = PlanMetrics()

    def run_instance(self, problem: Dict) -> Dict[str, float]:
        """
        Run all strategies on one instance.

        Returns:
            Dict of label -> value ratio
        """
        orders = problem['orders']
        capacity = problem['capacity']
        optimum = reference_optimum(orders, capacity)

        ratios = {}
        for label in LABELS:
            start = time.perf_counter()
            plan = select_orders_for_delivery(
                orders, problem['robot_id'], capacity,
                pool=self.pool, config=self.config, strategy=STRATEGIES[label],
            )
            elapsed = time.perf_counter() - start
            self.metrics.track_plan(label, plan, capacity, optimum, elapsed)
            ratios[label] = self.metrics.runs[-1]['value_ratio']
        return ratios

    def run_all_benchmarks(self):
        """Run complete benchmark suite."""
        print("\n" + "=" * 100)
        print("COMPREHENSIVE BENCHMARK: ALL STRATEGIES VS TRUE OPTIMUM")
        print("=" * 100)

        for size in self.sizes:
            for problem_idx in range(self.num_problems):
                problem = create_planning_problem(
                    num_orders=size,
                    capacity=self.capacity,
                    seed=self.seed + problem_idx,
                )
                print(f"  [n={size:4d} #{problem_idx + 1}]", end="", flush=True)
                ratios = self.run_instance(problem)
                print("  " + "  ".join(f"{label}={ratios[label]:.3f}" for label in LABELS))

        self._print_summary()
        self._generate_plots()

    def _print_summary(self):
        """Print benchmark summary."""
        print("\n" + "=" * 100)
        print("BENCHMARK SUMMARY")
        print("=" * 100)

        for label in LABELS:
            summary = self.metrics.get_summary(label)
            if not summary:
                continue
            print(f"\n{label.upper()}:")
            print(f"  Avg value ratio:    {summary['avg_value_ratio']:.4f}")
            print(f"  Min value ratio:    {summary['min_value_ratio']:.4f}")
            print(f"  Optimal runs:       {summary['optimal_runs']}/{summary['num_runs']}")
            print(f"  Inconsistent plans: {summary['inconsistent_runs']}")
            print(f"  Avg utilization:    {summary['avg_utilization']:.1f}%")
            print(f"  Avg runtime:        {summary['avg_runtime_ms']:.2f} ms "
                  f"(max {summary['max_runtime_ms']:.2f} ms)")

    def _generate_plots(self):
        """Generate and save plots."""
        os.makedirs(self.output_dir, exist_ok=True)

        print("\n" + "=" * 100)
        print("GENERATING PLOTS")
        print("=" * 100)

        self._plot_value_ratios()
        self._plot_runtimes()

        print(f"\nPlots saved to {self.output_dir}/")

    def _plot_value_ratios(self):
        """Plot mean value ratio per strategy."""
        fig, ax = plt.subplots(figsize=(12, 6))

        means = []
        stds = []
        for label in LABELS:
            ratios = [m['value_ratio'] for m in self.metrics.runs_for(label)]
            means.append(np.mean(ratios) if ratios else 0.0)
            stds.append(np.std(ratios) if ratios else 0.0)

        x_pos = np.arange(len(LABELS))
        ax.bar(x_pos, means, yerr=stds, capsize=10, alpha=0.8, color=COLORS)

        # FPTAS guarantee
        ax.axhline(y=1.0 - self.config.fptas_epsilon, color='gray', linestyle='--',
                   linewidth=2, label=f'1 - eps ({1.0 - self.config.fptas_epsilon:.2f})')

        ax.set_ylabel('Plan Value / Optimum', fontsize=12, fontweight='bold')
        ax.set_title('Value Ratio by Strategy', fontsize=14, fontweight='bold')
        ax.set_xticks(x_pos)
        ax.set_xticklabels([label.upper() for label in LABELS], fontsize=10)
        ax.set_ylim([0, 1.05])
        ax.grid(axis='y', alpha=0.3)
        ax.legend(fontsize=10)

        for i, mean in enumerate(means):
            ax.text(i, mean + 0.01, f'{mean:.3f}', ha='center', fontsize=10, fontweight='bold')

        plt.tight_layout()
        plt.savefig(os.path.join(self.output_dir, '01_value_ratios.png'), dpi=300, bbox_inches='tight')
        print("  Saved: 01_value_ratios.png")
        plt.close(fig)

    def _plot_runtimes(self):
        """Plot mean runtime per strategy and instance size."""
        fig, ax = plt.subplots(figsize=(14, 7))

        for label, color in zip(LABELS, COLORS):
            runs = self.metrics.runs_for(label)
            if not runs:
                continue
            per_size = np.array([m['runtime_seconds'] * 1000 for m in runs]).reshape(
                len(self.sizes), self.num_problems)
            ax.plot(self.sizes, per_size.mean(axis=1), marker='o', label=label.upper(),
                    color=color, linewidth=2.5, markersize=5, alpha=0.8)

        ax.set_xlabel('Orders', fontsize=12, fontweight='bold')
        ax.set_ylabel('Runtime (ms)', fontsize=12, fontweight='bold')
        ax.set_title('Runtime by Instance Size', fontsize=14, fontweight='bold')
        ax.legend(fontsize=11, loc='best')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        plt.savefig(os.path.join(self.output_dir, '02_runtimes.png'), dpi=300, bbox_inches='tight')
        print("  Saved: 02_runtimes.png")
        plt.close(fig)


def _parse_sizes(text: str) -> List[int]:
    return [int(x.strip()) for x in text.split(",") if x.strip() != ""]


def main():
    parser = argparse.ArgumentParser(
        description="Benchmark order selection strategies against the true optimum"
    )
    parser.add_argument(
        "--problems",
        type=int,
        default=5,
        help="Instances per size (default: 5)"
    )
    parser.add_argument(
        "--sizes",
        default="10,40,80,150",
        help="Comma-separated order counts (default: 10,40,80,150)"
    )
    parser.add_argument(
        "--capacity",
        type=int,
        default=300,
        help="Robot capacity (default: 300)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed (default: 42)"
    )
    parser.add_argument(
        "--exact-pruning",
        action="store_true",
        help="Enable heuristic pruning in the exact tier"
    )
    parser.add_argument(
        "--output-dir",
        default="comprehensive_results",
        help="Directory for plots"
    )

    args = parser.parse_args()

    benchmark = ComprehensiveBenchmark(
        num_problems=args.problems,
        sizes=_parse_sizes(args.sizes),
        capacity=args.capacity,
        seed=args.seed,
        output_dir=args.output_dir,
        config=OptimizerConfig(exact_pruning=args.exact_pruning),
    )
    benchmark.run_all_benchmarks()


if __name__ == "__main__":
    main()
