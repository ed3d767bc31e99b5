"""
ccs.py

Compressed column storage (CCS/CSC): a matrix is the triple
(values, row_indices, col_ptr) plus its declared rows and cols. Column j owns
the slots col_ptr[j] <= i < col_ptr[j+1] of values and row_indices.

decode() and encode() move matrices in and out of the flat caller buffers used
by the task harness. decode() only checks buffer lengths against the declared
counts; check_structure() is where the invariants are enforced.
"""
import numpy as np
import scipy.sparse as sp

from pmatmul.exceptions import CapacityExceeded, MalformedInput, ShapeMismatch

VALUE_DTYPE = np.float64
INDEX_DTYPE = np.int64


################################################################################
class SparseMatrix:
################################################################################

    def __init__(self, rows, cols, values=None, row_indices=None, col_ptr=None):
        if rows < 0 or cols < 0:
            raise ShapeMismatch(f"negative shape ({rows}, {cols})")

        self.rows = int(rows)
        self.cols = int(cols)

        # Empty structure: no entries, every column pointer is zero
        self.values = np.asarray(values if values is not None else [], dtype=VALUE_DTYPE)
        self.row_indices = np.asarray(row_indices if row_indices is not None else [], dtype=INDEX_DTYPE)
        if col_ptr is None:
            col_ptr = np.zeros(self.cols + 1, dtype=INDEX_DTYPE)
        self.col_ptr = np.asarray(col_ptr, dtype=INDEX_DTYPE)

    ############################################################################
    # Accessors and string representations
    ############################################################################

    @property
    def nnz(self) -> int:
        return int(self.values.shape[0])

    @property
    def shape(self):
        return (self.rows, self.cols)

    def column(self, j):
        """Row indices and values stored for column j."""
        start, end = self.col_ptr[j], self.col_ptr[j + 1]
        return self.row_indices[start:end], self.values[start:end]

    def column_slice(self, start, end) -> 'SparseMatrix':
        """Columns [start, end) as a new matrix whose col_ptr starts at 0."""
        lo, hi = self.col_ptr[start], self.col_ptr[end]
        return SparseMatrix(self.rows, end - start,
                            self.values[lo:hi].copy(),
                            self.row_indices[lo:hi].copy(),
                            self.col_ptr[start:end + 1] - lo)

    def __repr__(self):
        return f"SparseMatrix({self.rows}x{self.cols}, nnz={self.nnz})"

    def __str__(self):
        return f"{self.to_dense()}"

    def __eq__(self, other):
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        return (self.shape == other.shape
                and np.array_equal(self.col_ptr, other.col_ptr)
                and np.array_equal(self.row_indices, other.row_indices)
                and np.array_equal(self.values, other.values))

    def copy(self):
        return SparseMatrix(self.rows, self.cols, self.values.copy(),
                            self.row_indices.copy(), self.col_ptr.copy())

    ############################################################################
    # Conversions
    ############################################################################

    def to_dense(self) -> np.ndarray:
        dense = np.zeros((self.rows, self.cols), dtype=VALUE_DTYPE)
        for j in range(self.cols):
            rows, vals = self.column(j)
            # Duplicate row entries add up, same as scipy
            np.add.at(dense[:, j], rows, vals)
        return dense

    @staticmethod
    def from_dense(dense, drop_zeros=True) -> 'SparseMatrix':
        dense = np.atleast_2d(np.asarray(dense, dtype=VALUE_DTYPE))
        rows, cols = dense.shape

        values, row_indices = [], []
        col_ptr = np.zeros(cols + 1, dtype=INDEX_DTYPE)
        for j in range(cols):
            nz = np.flatnonzero(dense[:, j]) if drop_zeros else np.arange(rows)
            row_indices.append(nz)
            values.append(dense[nz, j])
            col_ptr[j + 1] = col_ptr[j] + nz.shape[0]

        if cols == 0:
            return SparseMatrix(rows, cols)
        return SparseMatrix(rows, cols, np.concatenate(values), np.concatenate(row_indices), col_ptr)

    @staticmethod
    def identity(n) -> 'SparseMatrix':
        return SparseMatrix(n, n, np.ones(n), np.arange(n), np.arange(n + 1))

    @staticmethod
    def from_scipy(matrix) -> 'SparseMatrix':
        csc = sp.csc_matrix(matrix)
        rows, cols = csc.shape
        return SparseMatrix(rows, cols, csc.data, csc.indices, csc.indptr)

    def to_scipy(self) -> sp.csc_matrix:
        return sp.csc_matrix((self.values, self.row_indices, self.col_ptr), shape=self.shape)


################################################################################
# Structural checks
################################################################################

def check_structure(matrix: SparseMatrix):
    """Raise MalformedInput if the triple breaks a CCS invariant."""
    col_ptr = matrix.col_ptr

    if col_ptr.shape[0] != matrix.cols + 1:
        raise MalformedInput(f"col_ptr has {col_ptr.shape[0]} entries, expected cols+1={matrix.cols + 1}")

    if matrix.values.shape[0] != matrix.row_indices.shape[0]:
        raise MalformedInput(f"{matrix.values.shape[0]} values but {matrix.row_indices.shape[0]} row indices")

    if col_ptr[0] != 0:
        raise MalformedInput(f"col_ptr[0]={col_ptr[0]}, expected 0")

    if col_ptr[-1] != matrix.nnz:
        raise MalformedInput(f"col_ptr[cols]={col_ptr[-1]} does not match nnz={matrix.nnz}")

    if np.any(np.diff(col_ptr) < 0):
        j = int(np.argmax(np.diff(col_ptr) < 0))
        raise MalformedInput(f"col_ptr decreases at column {j}: {col_ptr[j]} > {col_ptr[j + 1]}")

    if matrix.nnz > 0:
        bad = (matrix.row_indices < 0) | (matrix.row_indices >= matrix.rows)
        if np.any(bad):
            i = int(np.argmax(bad))
            raise MalformedInput(f"row index {matrix.row_indices[i]} at slot {i} outside [0, {matrix.rows})")


def is_well_formed(matrix: SparseMatrix) -> bool:
    try:
        check_structure(matrix)
    except MalformedInput:
        return False
    return True


################################################################################
# Buffer codec
################################################################################

def _take(buffer, count, name):
    # The declared count is authoritative; the buffer may be longer (over-allocated)
    if count < 0:
        raise MalformedInput(f"{name}: negative count {count}")
    if count == 0:
        return np.empty(0)
    if buffer is None:
        raise MalformedInput(f"{name}: buffer is missing but {count} elements were declared")

    buffer = np.asarray(buffer).reshape(-1)
    if buffer.shape[0] < count:
        raise MalformedInput(f"{name}: buffer holds {buffer.shape[0]} elements, {count} declared")
    return buffer[:count]


def _as_index_array(buffer, name):
    # Index buffers are allowed to arrive as doubles
    if buffer.dtype.kind == 'f':
        if not np.all(np.isfinite(buffer)) or np.any(buffer != np.floor(buffer)):
            raise MalformedInput(f"{name}: non-integral index value")
    return buffer.astype(INDEX_DTYPE)


def decode(values, row_indices, col_ptr, rows, cols, counts=None) -> SparseMatrix:
    """
    Rebuild a SparseMatrix from three flat buffers.

    counts is (n_values, n_row_indices, n_col_ptr); when omitted the buffer
    lengths are used. A matrix with no columns may leave col_ptr empty.
    """
    if counts is None:
        counts = tuple(0 if b is None else np.asarray(b).size for b in (values, row_indices, col_ptr))
    n_values, n_row_indices, n_col_ptr = counts

    vals = _take(values, n_values, "values").astype(VALUE_DTYPE)
    rids = _as_index_array(_take(row_indices, n_row_indices, "row_indices"), "row_indices")

    if cols == 0 and n_col_ptr == 0:
        ptr = np.zeros(1, dtype=INDEX_DTYPE)
    else:
        ptr = _as_index_array(_take(col_ptr, n_col_ptr, "col_ptr"), "col_ptr")
        if ptr.shape[0] != cols + 1:
            raise MalformedInput(f"col_ptr: {ptr.shape[0]} elements declared, cols+1={cols + 1} expected")

    return SparseMatrix(rows, cols, vals, rids, ptr)


def encode(matrix: SparseMatrix, out_values, out_row_indices, out_col_ptr,
           capacity_values=None, capacity_row_indices=None, capacity_col_ptr=None) -> int:
    """
    Write matrix into caller buffers and return the number of bytes written.

    Capacities default to the buffer lengths and can never exceed them. Raises
    CapacityExceeded before anything is written if any buffer is too small.
    """
    needed = (
        ("values", matrix.nnz, out_values, capacity_values),
        ("row_indices", matrix.nnz, out_row_indices, capacity_row_indices),
        ("col_ptr", matrix.cols + 1, out_col_ptr, capacity_col_ptr),
    )

    for name, count, buffer, capacity in needed:
        length = 0 if buffer is None else np.asarray(buffer).size
        capacity = length if capacity is None else min(capacity, length)
        if count > capacity:
            raise CapacityExceeded(name, count, capacity)

    bytes_written = 0
    for (name, count, buffer, _), data in zip(needed, (matrix.values, matrix.row_indices, matrix.col_ptr)):
        if count == 0:
            continue
        buffer[:count] = data
        bytes_written += buffer[:count].nbytes

    return bytes_written
