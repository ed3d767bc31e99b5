"""
gustavson.py

Local sparse product C[:, range] = A @ B[:, range] in CCS, column by column
(Gustavson's algorithm). For each column j of B, every stored (r, bv) pulls
column r of A into a dense scratch vector; the rows touched are then sorted
and written out as column j of C.

The scratch vector is never cleared: a marker array remembers which column
last wrote each row, so the first write of a column overwrites instead of
adding. Per-column cost is the number of multiply-adds, not A.rows.
"""
import numpy as np
from numba import njit      # nopython mode

from pmatmul.ccs import INDEX_DTYPE, VALUE_DTYPE, SparseMatrix
from pmatmul.exceptions import ShapeMismatch


class PartialResult(SparseMatrix):
    """Columns [start_col, start_col + cols) of a product, with a local col_ptr."""

    def __init__(self, rows, cols, values=None, row_indices=None, col_ptr=None, start_col=0):
        super().__init__(rows, cols, values, row_indices, col_ptr)
        self.start_col = int(start_col)

    @property
    def end_col(self):
        return self.start_col + self.cols

    def __repr__(self):
        return f"PartialResult({self.rows}x[{self.start_col}:{self.end_col}], nnz={self.nnz})"


################################################################################
# Compiled kernel
################################################################################

@njit(cache=True)
def _gustavson(a_col_ptr, a_row_indices, a_values, a_rows,
               b_col_ptr, b_row_indices, b_values, col_start, col_end, drop_zeros):
    n_cols = col_end - col_start
    c_col_ptr = np.zeros(n_cols + 1, np.int64)

    capacity = max(16, b_col_ptr[col_end] - b_col_ptr[col_start])
    c_rows = np.empty(capacity, np.int64)
    c_vals = np.empty(capacity, np.float64)

    work = np.zeros(a_rows, np.float64)
    marker = np.full(a_rows, -1, np.int64)
    touched = np.empty(a_rows, np.int64)

    pos = 0
    for jj in range(n_cols):
        j = col_start + jj
        n_touched = 0

        # Scatter-accumulate A[:, r] * B[r, j] for every stored r of column j
        for bp in range(b_col_ptr[j], b_col_ptr[j + 1]):
            r = b_row_indices[bp]
            bv = b_values[bp]
            for ap in range(a_col_ptr[r], a_col_ptr[r + 1]):
                ar = a_row_indices[ap]
                if marker[ar] != jj:
                    marker[ar] = jj
                    work[ar] = a_values[ap] * bv
                    touched[n_touched] = ar
                    n_touched += 1
                else:
                    work[ar] += a_values[ap] * bv

        # Grow the output by doubling
        if pos + n_touched > capacity:
            new_capacity = max(2 * capacity, pos + n_touched)
            rows2 = np.empty(new_capacity, np.int64)
            vals2 = np.empty(new_capacity, np.float64)
            rows2[:pos] = c_rows[:pos]
            vals2[:pos] = c_vals[:pos]
            c_rows, c_vals, capacity = rows2, vals2, new_capacity

        # Compact in ascending row order
        ordered = np.sort(touched[:n_touched])
        for t in range(n_touched):
            ar = ordered[t]
            v = work[ar]
            if drop_zeros and v == 0.0:
                continue
            c_rows[pos] = ar
            c_vals[pos] = v
            pos += 1

        c_col_ptr[jj + 1] = pos

    return c_col_ptr, c_rows[:pos].copy(), c_vals[:pos].copy()


################################################################################
# Python entry points
################################################################################

def multiply_columns(a: SparseMatrix, b: SparseMatrix, col_range=None,
                     drop_zeros=True, start_col=None) -> PartialResult:
    """
    Columns col_range = [start, end) of A @ B, numbered in b's own columns.

    The caller guarantees a.cols == b.rows and well-formed inputs. start_col
    is the global column the fragment starts at (defaults to range start),
    which differs when b is already a slice of a larger matrix.
    """
    start, end = (0, b.cols) if col_range is None else col_range

    c_col_ptr, c_rows, c_vals = _gustavson(
        np.ascontiguousarray(a.col_ptr, dtype=INDEX_DTYPE),
        np.ascontiguousarray(a.row_indices, dtype=INDEX_DTYPE),
        np.ascontiguousarray(a.values, dtype=VALUE_DTYPE),
        a.rows,
        np.ascontiguousarray(b.col_ptr, dtype=INDEX_DTYPE),
        np.ascontiguousarray(b.row_indices, dtype=INDEX_DTYPE),
        np.ascontiguousarray(b.values, dtype=VALUE_DTYPE),
        start, end, drop_zeros)

    return PartialResult(a.rows, end - start, c_vals, c_rows, c_col_ptr,
                         start_col=start if start_col is None else start_col)


def multiply(a: SparseMatrix, b: SparseMatrix, drop_zeros=True) -> SparseMatrix:
    """Whole product on one worker."""
    if a.cols != b.rows:
        raise ShapeMismatch(f"A @ B: A.cols:{a.cols} != B.rows:{b.rows}")

    c = multiply_columns(a, b, drop_zeros=drop_zeros)
    return SparseMatrix(c.rows, c.cols, c.values, c.row_indices, c.col_ptr)
