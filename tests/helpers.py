# helpers.py - shared test data builders

import numpy as np

from pmatmul.ccs import SparseMatrix, decode
from pmatmul.task import TaskData


def random_sparse(rows, cols, density=0.3, seed=0, low=-10, high=10) -> SparseMatrix:
    """Integer-valued random matrix, so products are exact in float64."""
    rng = np.random.default_rng(seed)
    dense = rng.integers(low, high + 1, size=(rows, cols)).astype(np.float64)
    dense[rng.random((rows, cols)) > density] = 0.0
    return SparseMatrix.from_dense(dense)


def sparse_task_data(a: SparseMatrix, b: SparseMatrix, capacity=None, index_dtype=np.float64,
                     col_ptr_capacity=None) -> TaskData:
    """
    Buffers laid out the way the sparse kernel reads them. Index buffers are
    doubles by default, and outputs are over-allocated unless capacity says
    otherwise.
    """
    m, k, n = a.rows, a.cols, b.cols

    inputs = [a.values.copy(), a.row_indices.astype(index_dtype), a.col_ptr.astype(index_dtype),
              b.values.copy(), b.row_indices.astype(index_dtype), b.col_ptr.astype(index_dtype)]
    inputs_count = [m, k, n] + [buf.size for buf in inputs]

    if capacity is None:
        capacity = m * n
    if col_ptr_capacity is None:
        col_ptr_capacity = n + 1

    outputs = [np.zeros(capacity), np.zeros(capacity, dtype=index_dtype), np.zeros(col_ptr_capacity, dtype=index_dtype)]
    outputs_count = [capacity, capacity, col_ptr_capacity]

    return TaskData(inputs, inputs_count, outputs, outputs_count)


def read_output(task_data: TaskData, rows, cols) -> SparseMatrix:
    """Decode C back out of the output buffers using its own col_ptr."""
    col_ptr = task_data.outputs[2][:cols + 1]
    nnz = int(col_ptr[-1])
    return decode(task_data.outputs[0], task_data.outputs[1], col_ptr, rows, cols,
                  counts=(nnz, nnz, cols + 1))


def check(sparse_matrix: SparseMatrix, numpy_matrix: np.ndarray, str="", atol=1e-9):
    sparse_as_numpy = sparse_matrix.to_dense()
    assert sparse_as_numpy.shape == numpy_matrix.shape, \
        f"{str} failed shape check\nsparse={sparse_as_numpy.shape} and numpy={numpy_matrix.shape}"
    assert np.allclose(sparse_as_numpy, numpy_matrix, rtol=0, atol=atol), \
        f"{str} failed allclose\nsparse:\n{sparse_as_numpy}\nnumpy:\n{numpy_matrix}"
