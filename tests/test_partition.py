# test_partition.py

import numpy as np
import pytest

from pmatmul.ccs import SparseMatrix
from pmatmul.partition import (column_work, counts_displs, partition, partition_bounds,
                               partition_by_work, range_of)

from helpers import random_sparse

sizes = [
    # (total_cols, workers)
    (0, 1),
    (1, 1),
    (10, 1),
    (10, 3),
    (9, 3),
    (3, 4),
    (2, 5),
    (100, 7),
    (64, 16),
]


@pytest.mark.parametrize("total,workers", sizes)
def test_partition_covers_every_column_once(total, workers):
    ranges = [partition(total, workers, r) for r in range(workers)]

    # Contiguous, rank ordered, starting at 0 and ending at total
    assert ranges[0][0] == 0
    assert ranges[-1][1] == total
    for (_, end), (start, _) in zip(ranges, ranges[1:]):
        assert end == start

    counts = [end - start for start, end in ranges]
    assert sum(counts) == total
    assert max(counts) - min(counts) <= 1


def test_first_remainder_ranks_get_one_more():
    # 10 = 3*3 + 1
    assert [partition(10, 3, r) for r in range(3)] == [(0, 4), (4, 7), (7, 10)]


def test_more_workers_than_columns():
    ranges = [partition(3, 5, r) for r in range(5)]
    assert ranges == [(0, 1), (1, 2), (2, 3), (3, 3), (3, 3)]


@pytest.mark.parametrize("total,workers", sizes)
def test_bounds_agree_with_partition(total, workers):
    bounds = partition_bounds(total, workers)
    assert [range_of(bounds, r) for r in range(workers)] == [partition(total, workers, r) for r in range(workers)]

    counts, displs = counts_displs(total, workers)
    assert np.array_equal(displs, bounds[:-1])
    assert np.array_equal(counts, np.diff(bounds))


def test_partition_rejects_bad_arguments():
    with pytest.raises(ValueError):
        partition(10, 0, 0)
    with pytest.raises(ValueError):
        partition(10, 2, 2)


################################################################################
# Work-balanced partition
################################################################################

def test_column_work():
    # A columns hold 2, 0, 1 entries
    A = SparseMatrix(3, 3, [1.0, 1.0, 1.0], [0, 2, 1], [0, 2, 2, 3])
    # B column 0 references rows 0 and 2, column 1 row 1, column 2 nothing
    B = SparseMatrix(3, 3, [1.0, 1.0, 1.0], [0, 2, 1], [0, 2, 3, 3])
    assert np.array_equal(column_work(A, B), [2 + 1 + 1, 0 + 1, 0 + 1])


def test_partition_by_work_isolates_heavy_column():
    bounds = partition_by_work([100, 1, 1, 1, 1], 2)
    assert np.array_equal(bounds, [0, 1, 5])


@pytest.mark.parametrize("total,workers", sizes)
def test_partition_by_work_is_a_valid_partition(total, workers):
    work = np.random.default_rng(total + workers).integers(1, 50, size=total)
    bounds = partition_by_work(work, workers)

    assert bounds.shape == (workers + 1,)
    assert bounds[0] == 0 and bounds[-1] == total
    assert np.all(np.diff(bounds) >= 0)


def test_partition_by_work_balances_better_than_columns():
    A = random_sparse(40, 40, density=0.2, seed=11)
    # B is heavy on the left
    dense = np.zeros((40, 40))
    dense[:, :5] = 1.0
    dense[0, 5:] = 1.0
    B = SparseMatrix.from_dense(dense)

    work = column_work(A, B)
    by_work = partition_by_work(work, 4)
    by_cols = partition_bounds(40, 4)

    def heaviest(bounds):
        return max(work[bounds[r]:bounds[r + 1]].sum() for r in range(4))

    assert heaviest(by_work) < heaviest(by_cols)
