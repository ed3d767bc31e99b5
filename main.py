"""
main.py

Multiply two random matrices with one of the kernels and check the result
against scipy (sparse) or numpy (dense) on rank 0.

    mpirun -n 4 python main.py --kernel sparse -m 2000 -k 1500 -n 1000 --density 0.01
    mpirun -n 4 python main.py --kernel dense -m 512 -k 512 -n 512
"""

################################################################################
# Imports and Setup
################################################################################

import argparse
import sys

import numpy as np
np.set_printoptions(precision=5, suppress=True, floatmode='fixed')

import scipy.sparse as sp

if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(line_buffering=True)     # make print output unbuffered (flush by default)

from mpi4py import MPI

from pmatmul.ccs import SparseMatrix
from pmatmul.dense_task import CannonMatMulTask
from pmatmul.sparse_task import SparseMatMulTask
from pmatmul.task import TaskData
from pmatmul.utilities import get_memory_usage, print_on_rank0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Parallel C = A @ B over MPI")
    parser.add_argument("--kernel", choices=["sparse", "dense"], default="sparse")
    parser.add_argument("-m", type=int, default=1000, help="rows of A")
    parser.add_argument("-k", type=int, default=1000, help="cols of A, rows of B")
    parser.add_argument("-n", type=int, default=1000, help="cols of B")
    parser.add_argument("--density", type=float, default=0.01, help="fraction of stored entries (sparse only)")
    parser.add_argument("--policy", choices=["columns", "work"], default="columns",
                        help="how B's columns are split between ranks (sparse only)")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


################################################################################
# Inputs
################################################################################

def sparse_inputs(m, k, n, density, seed):
    rng = np.random.default_rng(seed)
    A = SparseMatrix.from_scipy(sp.random(m, k, density=density, format="csc", random_state=rng))
    B = SparseMatrix.from_scipy(sp.random(k, n, density=density, format="csc", random_state=rng))

    inputs = [A.values, A.row_indices.astype(np.float64), A.col_ptr.astype(np.float64),
              B.values, B.row_indices.astype(np.float64), B.col_ptr.astype(np.float64)]
    inputs_count = [m, k, n] + [buf.size for buf in inputs]

    # scipy drops exact zeros as well, so its nnz is the size C needs
    capacity = (A.to_scipy() @ B.to_scipy()).nnz
    outputs = [np.zeros(capacity), np.zeros(capacity), np.zeros(n + 1)]
    return (A, B), TaskData(inputs, inputs_count, outputs, [capacity, capacity, n + 1])


def dense_inputs(m, k, n, seed):
    rng = np.random.default_rng(seed)
    A = rng.random((m, k))
    B = rng.random((k, n))
    td = TaskData([A.reshape(-1), B.reshape(-1)], [m, k, k, n], [np.zeros(m * n)], [m * n])
    return (A, B), td


################################################################################
# Main
################################################################################

def main(argv=None):
    args = parse_args(argv)
    comm = MPI.COMM_WORLD
    rank = comm.Get_rank()

    operands, td = None, TaskData()
    if rank == 0:
        if args.kernel == "sparse":
            operands, td = sparse_inputs(args.m, args.k, args.n, args.density, args.seed)
        else:
            operands, td = dense_inputs(args.m, args.k, args.n, args.seed)

    if args.kernel == "sparse":
        SparseMatMulTask.partition_policy = args.policy
        SparseMatMulTask.verbose = args.verbose
        task = SparseMatMulTask(td)
    else:
        CannonMatMulTask.verbose = args.verbose
        task = CannonMatMulTask(td)

    print_on_rank0("*" * 80)
    print_on_rank0(f"kernel={args.kernel}, A=({args.m}, {args.k}), B=({args.k}, {args.n}), "
                   f"processes={comm.Get_size()}")

    if not task.validation():
        print_on_rank0("Validation failed")
        return 1

    t0 = MPI.Wtime()
    task.pre_processing()
    task.run()
    task.post_processing()
    elapsed = comm.reduce(MPI.Wtime() - t0, op=MPI.MAX, root=0)

    mem_bytes, mem_label = get_memory_usage()
    mem_bytes = comm.reduce(mem_bytes, op=MPI.SUM, root=0)

    if rank == 0:
        A, B = operands
        if args.kernel == "sparse":
            expected = (A.to_scipy() @ B.to_scipy()).toarray()
            actual = task.result.to_dense()
            print(f"C: nnz={task.result.nnz}, {task.bytes_written} bytes written")
        else:
            expected = A @ B
            actual = td.outputs[0].reshape(args.m, args.n)

        ok = np.allclose(actual, expected)
        print(f"Time: {elapsed:.5f} sec, memory ({mem_label}, all ranks): {mem_bytes / 1024**2:.1f} MB")
        print(f"Matches reference: {ok}")
        if not ok:
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
