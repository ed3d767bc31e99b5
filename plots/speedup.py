# speedup.py
#
# Strong-scaling speedup from time_operations.py JSON files, one per process
# count:
#
#   python plots/speedup.py plots/times_p1.json plots/times_p4.json plots/times_p16.json

import argparse
import json
from collections import defaultdict

import numpy as np
import matplotlib.pyplot as plt

from pathlib import Path
ROOT_DIR = Path(__file__).resolve().parent  # plots folder
FIG_PATH = ROOT_DIR / "speedup.pdf"

import matplotlib as mpl
# Set font types for better compatibility with vector graphic formats
mpl.rcParams['pdf.fonttype'] = 42
mpl.rcParams['ps.fonttype'] = 42
mpl.rcParams['svg.fonttype'] = 'none'


plot_font = 22

mpl.rcParams.update({
    'font.size': plot_font,
    'axes.titlesize': plot_font,
    'axes.labelsize': plot_font,
    'xtick.labelsize': plot_font * 0.9,
    'ytick.labelsize': plot_font * 0.9,
    'legend.fontsize': plot_font * 0.6,
    'grid.alpha': 1.0,       # fully opaque
    'grid.linewidth': 0.2,   # line thickness
})


def load_times(paths):
    """{(name, m, k, n): {procs: time}} from every file."""
    times = defaultdict(dict)
    for path in paths:
        with open(path) as f:
            for record in json.load(f):
                key = (record["name"], record["m"], record["k"], record["n"])
                times[key][record["procs"]] = record["time"]
    return times


def plot_speedup(times, fig_path=FIG_PATH, save_fig=True, show=True):
    all_procs = sorted({p for by_procs in times.values() for p in by_procs})
    procs = np.array(all_procs)

    plt.figure(figsize=(8, 8))
    plt.plot(procs, procs / procs[0], color='purple', marker='D', linestyle='--', label='Ideal')

    markers = ['o', 's', '^', 'v', 'P', 'X']
    for i, ((name, m, k, n), by_procs) in enumerate(sorted(times.items())):
        p = np.array(sorted(by_procs))
        t = np.array([by_procs[x] for x in p])

        # Speedup S(p) = T(p_min) / T(p)
        S = t[0] / t
        plt.plot(p, S, marker=markers[i % len(markers)], linestyle='-', label=f"{name} ({m}x{k}x{n})")

    plt.xscale('log', base=2)
    plt.yscale('log', base=10)

    plt.xticks(procs, procs)
    plt.xlabel(r"Number of Processes ($p$)")
    plt.ylabel(r"Speedup $\mathcal{S}$(p) = T(1) / T($p$)")
    plt.title("Strong Scaling Speedup")
    plt.grid(True)
    plt.legend(loc='upper left', framealpha=0.5)
    plt.tight_layout()

    if save_fig:
        plt.savefig(fig_path, dpi=150)  # Images should be 150dpi (no smaller or larger)
        print(f"Saved speedup plot to {fig_path}")

    if show:
        plt.show()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Plot strong-scaling speedup")
    parser.add_argument("files", nargs="+", help="JSON files written by time_operations.py")
    parser.add_argument("--out", default=str(FIG_PATH))
    parser.add_argument("--no-show", action="store_true")
    args = parser.parse_args()

    plot_speedup(load_times(args.files), fig_path=args.out, show=not args.no_show)
