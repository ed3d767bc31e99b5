# utilities.py - utility functions

import os
import gc

import numpy as np
np.set_printoptions(precision=5, suppress=True, floatmode='fixed')

from mpi4py import MPI
import psutil         # for memory usage


def create_grid_comm(comm=None):
    """
    Periodic q x q Cartesian grid over the first q*q ranks of comm, with q the
    largest square that fits. Ranks left out get MPI.COMM_NULL.
    """
    comm = comm if comm is not None else MPI.COMM_WORLD
    num_procs = comm.Get_size()

    # Grid rows and columns
    q = int(np.sqrt(num_procs))
    while (q + 1) * (q + 1) <= num_procs:
        q += 1
    while q * q > num_procs:
        q -= 1

    dims = [q, q]
    periods = [True, True]
    return comm.Create_cart(dims, periods, reorder=False)


def dtype_to_mpi(dtype):
    dtype = np.dtype(dtype)
    if dtype == np.int32:
        return MPI.INT
    elif dtype == np.int64:
        return MPI.INT64_T
    elif dtype == np.float32:
        return MPI.FLOAT
    elif dtype == np.float64:
        return MPI.DOUBLE
    else:
        raise ValueError(f"Unsupported dtype: {dtype}")


def print_ordered_by_rank(x, *args, comm=None, **kwargs):
    comm = comm if comm is not None else MPI.COMM_WORLD
    for p in range(comm.Get_size()):
        comm.Barrier()
        if p == comm.Get_rank():
            print(x, *args, **kwargs, flush=True)
    comm.Barrier()


def print_on_rank0(x, *args, comm=None, **kwargs):
    comm = comm if comm is not None else MPI.COMM_WORLD
    if comm.Get_rank() == 0:
        print(x, *args, **kwargs, flush=True)


def get_memory_usage():
    # Prefer USS (unique set size) or PSS (proportional set size) if available; if not, fall back to rss-shared or rss.
    proc = psutil.Process(os.getpid())
    gc.collect()

    try:
        mem_full = proc.memory_full_info()
        # Choose uss (unique) first, else pss (proportional)
        mem_bytes = getattr(mem_full, "uss", None) or getattr(mem_full, "pss", None) or proc.memory_info().rss
        mem_label = "USS" if getattr(mem_full, "uss", None) else ("PSS" if getattr(mem_full, "pss", None) else "RSS")
    except (psutil.AccessDenied, psutil.ZombieProcess):
        mi = proc.memory_info()
        # If shared attribute exists, subtract it to approximate private memory
        shared = getattr(mi, "shared", None)
        if shared is not None:
            mem_bytes = mi.rss - shared
            mem_label = "RSS-shared"
        else:
            mem_bytes = mi.rss
            mem_label = "RSS"
    return mem_bytes, mem_label


def time_it(fn, *args, repeat=5, warmups=0, timer_fn=MPI.Wtime):
    # optional warmups for steady-state CPU, caches, etc.
    for _ in range(warmups):
        fn(*args)
    times = []
    for _ in range(repeat):
        t0 = timer_fn()
        fn(*args)
        times.append(timer_fn() - t0)
    return min(times), sum(times)/len(times)
