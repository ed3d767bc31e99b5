# partition.py - contiguous column ranges per rank
#
# Ranges are a pure function of (cols, worker count, rank), so any rank can
# work out any other rank's range without a message.

import numpy as np


def counts_displs(total: int, worker_count: int):
    base, rem = divmod(total, worker_count)
    counts = np.array([base + 1 if r < rem else base for r in range(worker_count)], dtype=np.int64)
    displs = np.zeros(worker_count, dtype=np.int64)
    displs[1:] = np.cumsum(counts[:-1])
    return counts, displs


def partition(total_cols: int, worker_count: int, rank: int):
    """[start, end) of the columns owned by rank; the first `remainder` ranks get one extra."""
    if worker_count <= 0:
        raise ValueError(f"worker_count must be positive, got {worker_count}")
    if not 0 <= rank < worker_count:
        raise ValueError(f"rank {rank} outside [0, {worker_count})")

    base, rem = divmod(total_cols, worker_count)
    start = rank * base + min(rank, rem)
    end = start + base + (1 if rank < rem else 0)
    return start, end


def partition_bounds(total_cols: int, worker_count: int) -> np.ndarray:
    """Bounds b with rank r owning [b[r], b[r+1])."""
    counts, _ = counts_displs(total_cols, worker_count)
    bounds = np.zeros(worker_count + 1, dtype=np.int64)
    bounds[1:] = np.cumsum(counts)
    return bounds


################################################################################
# Work-balanced partition
################################################################################

def column_work(a, b) -> np.ndarray:
    """
    Estimated cost of each column of A @ B.

    For column j this is the number of multiply-adds Gustavson performs
    (sum of nnz(A[:, r]) over the stored rows r of B[:, j]) plus one, so
    empty columns still weigh something.
    """
    a_col_nnz = np.diff(a.col_ptr)
    per_entry = a_col_nnz[b.row_indices] if b.nnz > 0 else np.zeros(0, dtype=np.int64)

    # Sum the per-entry cost inside each column of B
    prefix = np.zeros(b.nnz + 1, dtype=np.int64)
    prefix[1:] = np.cumsum(per_entry)
    return prefix[b.col_ptr[1:]] - prefix[b.col_ptr[:-1]] + 1


def partition_by_work(work, worker_count: int) -> np.ndarray:
    """
    Contiguous bounds that split the total work as evenly as the column
    granularity allows. Same bounds layout as partition_bounds().
    """
    work = np.asarray(work, dtype=np.int64)
    total_cols = work.shape[0]

    prefix = np.zeros(total_cols + 1, dtype=np.int64)
    prefix[1:] = np.cumsum(work)

    targets = prefix[-1] * np.arange(worker_count + 1) / worker_count
    bounds = np.searchsorted(prefix, targets, side="left").astype(np.int64)
    bounds = np.clip(bounds, 0, total_cols)
    bounds[0], bounds[-1] = 0, total_cols
    return np.maximum.accumulate(bounds)


def range_of(bounds, rank: int):
    return int(bounds[rank]), int(bounds[rank + 1])
