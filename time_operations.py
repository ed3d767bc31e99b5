# time_operations.py
#
#   mpirun -n 4 python time_operations.py --json plots/times_p4.json

import argparse
import json

import numpy as np
np.set_printoptions(precision=1, suppress=True, floatmode='fixed')

import scipy.sparse as sp
from mpi4py import MPI

from pmatmul.ccs import SparseMatrix
from pmatmul.dense_task import CannonMatMulTask
from pmatmul.perf import Perf, PerfAttr, PerfResults
from pmatmul.sparse_task import SparseMatMulTask
from pmatmul.task import TaskData

comm = MPI.COMM_WORLD
rank = comm.Get_rank()
size = comm.Get_size()


sizes = [
    # (m, k, n, density)
    (500, 500, 500, 0.01),
    (2000, 2000, 2000, 0.005),
    (4000, 4000, 4000, 0.001),
    # (8192, 8192, 8192, 0.001),
]

repeat = 5
warmups = 1


def sparse_task_data(m, k, n, density, seed=0):
    if rank != 0:
        return TaskData()
    rng = np.random.default_rng(seed)
    A = SparseMatrix.from_scipy(sp.random(m, k, density=density, format="csc", random_state=rng))
    B = SparseMatrix.from_scipy(sp.random(k, n, density=density, format="csc", random_state=rng))
    capacity = (A.to_scipy() @ B.to_scipy()).nnz

    inputs = [A.values, A.row_indices, A.col_ptr, B.values, B.row_indices, B.col_ptr]
    return TaskData(inputs, [m, k, n] + [buf.size for buf in inputs],
                    [np.zeros(capacity), np.zeros(capacity, dtype=np.int64), np.zeros(n + 1, dtype=np.int64)],
                    [capacity, capacity, n + 1])


def dense_task_data(m, k, n, seed=0):
    if rank != 0:
        return TaskData()
    rng = np.random.default_rng(seed)
    A = rng.random(m * k)
    B = rng.random(k * n)
    return TaskData([A, B], [m, k, k, n], [np.zeros(m * n)], [m * n])


def make_tasks(m, k, n, density):
    def sparse(policy):
        def build():
            SparseMatMulTask.partition_policy = policy
            return SparseMatMulTask(sparse_task_data(m, k, n, density))
        return build

    return {
        "sparse (columns)": sparse("columns"),
        "sparse (work)":    sparse("work"),
        "dense (cannon)":   lambda: CannonMatMulTask(dense_task_data(m, k, n)),
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Time the kernels over a table of sizes")
    parser.add_argument("--json", default=None, help="write the timings here (rank 0)")
    parser.add_argument("--pipeline", action="store_true", help="time the whole lifecycle instead of run()")
    args = parser.parse_args()

    if rank == 0:
        print("=" * 40)
        print(f"Number of processes: {size}")
        print(f"warmups={warmups}, repeat={repeat}, pipeline={args.pipeline}")
        print("=" * 40)

    records = []
    for (m, k, n, density) in sizes:
        if rank == 0:
            print("-" * 40)
            print(f"m={m}, k={k}, n={n}, density={density}")
            print("-" * 40)

        results = []
        for name, build in make_tasks(m, k, n, density).items():
            comm.Barrier()
            perf = Perf(build())
            perf_attr = PerfAttr(num_running=repeat, current_timer=MPI.Wtime, warmups=warmups)
            if args.pipeline:
                perf_results = perf.pipeline_run(perf_attr, PerfResults())
            else:
                perf_results = perf.task_run(perf_attr, PerfResults())

            # For sorting later
            results.append((name, perf_results))
            records.append({"name": name, "procs": size, "m": m, "k": k, "n": n, "density": density,
                            "type": perf_results.type_of_running, "time": perf_results.time_sec,
                            "min_time": perf_results.min_time_sec, "memory_bytes": perf_results.memory_bytes})

        if rank == 0:
            results.sort(key=lambda x: x[1].time_sec, reverse=True)   # sort by time (descending)
            max_chars = max(len(name) for name, _ in results)
            for name, perf_results in results:
                print(f"{(name + ' =>'):>{max_chars + 5}} {perf_results.time_sec:.5f} seconds")

        for name, perf_results in results:
            Perf.print_perf_statistic(perf_results, name=f"{name} ({m}, {k}, {n})")

    if rank == 0 and args.json:
        with open(args.json, "w") as f:
            json.dump(records, f, indent=2)
        print(f"Saved timings to {args.json}")
