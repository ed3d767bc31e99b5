# test_assemble.py

import numpy as np
import pytest

from pmatmul.assemble import assemble
from pmatmul.ccs import SparseMatrix, check_structure
from pmatmul.exceptions import MalformedInput
from pmatmul.gustavson import PartialResult, multiply, multiply_columns
from pmatmul.partition import partition

from helpers import random_sparse


def split_multiply(A, B, workers):
    """What the ranks compute, in rank order, without any messages."""
    partials = []
    for rank in range(workers):
        start, end = partition(B.cols, workers, rank)
        local = B.column_slice(start, end)
        partials.append(multiply_columns(A, local, (0, end - start), start_col=start))
    return partials


@pytest.mark.parametrize("workers", [1, 2, 3, 4, 5])
def test_assembled_equals_single_worker(workers):
    A = random_sparse(12, 9, 0.3, seed=21)
    B = random_sparse(9, 7, 0.3, seed=22)

    C = assemble(split_multiply(A, B, workers), rows=A.rows)
    check_structure(C)
    assert C == multiply(A, B)


def test_more_workers_than_columns():
    A = random_sparse(5, 4, 0.5, seed=23)
    B = random_sparse(4, 2, 0.5, seed=24)

    partials = split_multiply(A, B, 5)
    assert [p.cols for p in partials] == [1, 1, 0, 0, 0]

    C = assemble(partials, rows=A.rows)
    assert C.col_ptr.shape == (B.cols + 1,)
    assert C.col_ptr[-1] == C.nnz
    assert C == multiply(A, B)


def test_offsets_are_running_nnz():
    p0 = PartialResult(3, 2, [1.0, 2.0, 3.0], [0, 2, 1], [0, 2, 3], start_col=0)
    p1 = PartialResult(3, 0, start_col=2)
    p2 = PartialResult(3, 1, [4.0], [2], [0, 1], start_col=2)

    C = assemble([p0, p1, p2])
    assert np.array_equal(C.col_ptr, [0, 2, 3, 4])
    assert np.array_equal(C.row_indices, [0, 2, 1, 2])
    assert np.array_equal(C.values, [1.0, 2.0, 3.0, 4.0])


def test_gap_between_fragments():
    p0 = PartialResult(3, 2, start_col=0)
    p1 = PartialResult(3, 2, start_col=3)
    with pytest.raises(MalformedInput):
        assemble([p0, p1])


def test_fragments_out_of_order():
    p0 = PartialResult(3, 2, start_col=0)
    p1 = PartialResult(3, 2, start_col=2)
    with pytest.raises(MalformedInput):
        assemble([p1, p0])


def test_row_count_mismatch():
    p0 = PartialResult(3, 1, start_col=0)
    p1 = PartialResult(4, 1, start_col=1)
    with pytest.raises(MalformedInput):
        assemble([p0, p1])


def test_no_fragments():
    C = assemble([], rows=3)
    assert C.shape == (3, 0)
    assert np.array_equal(C.col_ptr, [0])

    with pytest.raises(ValueError):
        assemble([])


def test_plain_matrices_are_taken_in_order():
    # Fragments without start_col are assumed contiguous
    left = SparseMatrix.from_dense([[1.0], [0.0]])
    right = SparseMatrix.from_dense([[0.0], [2.0]])
    C = assemble([left, right])
    assert np.array_equal(C.to_dense(), [[1.0, 0.0], [0.0, 2.0]])
