"""
dense_task.py

Dense row-major C = A @ B with Cannon's algorithm on a periodic q x q grid.
q is the largest square that fits the communicator; ranks outside the grid
only take part in the validation broadcast.

Buffer layout (root only):
    inputs_count  = [rows_a, cols_a, rows_b, cols_b]
    inputs        = [a, b]        flat, row-major
    outputs       = [c]           flat, row-major, capacity in outputs_count[0]
"""
from math import ceil

import numpy as np
from mpi4py import MPI
from numba import njit      # nopython mode

from pmatmul.exceptions import CapacityExceeded, ShapeMismatch
from pmatmul.task import Task
from pmatmul.utilities import create_grid_comm, print_on_rank0


## Local block multiply-accumulate, C += A @ B
@njit(cache=True)
def _matmat(A, B, C):
    n, k = A.shape
    m = B.shape[1]
    for i in range(n):
        for j in range(k):
            val = A[i, j]
            for l in range(m):
                C[i, l] += val * B[j, l]


def _split_blocks(matrix, q, n_loc, m_loc):
    # Zero-pad to a multiple of the grid, then cut into q*q blocks in grid rank order
    padded = np.zeros((q * n_loc, q * m_loc), dtype=np.float64)
    padded[:matrix.shape[0], :matrix.shape[1]] = matrix

    blocks = []
    for i in range(q):
        for j in range(q):
            blocks.append(np.ascontiguousarray(padded[i * n_loc:(i + 1) * n_loc, j * m_loc:(j + 1) * m_loc]))
    return blocks


class CannonMatMulTask(Task):
    # Grid rank 0 collects the result, so the root has to be world rank 0
    root = 0

    def __init__(self, task_data=None, comm=None):
        super().__init__(task_data, comm)
        self.result = None
        self._header = None
        self._grid = None

    ############################################################################
    # Validation
    ############################################################################

    def _build_header(self):
        td = self.task_data
        header = {"shape": None, "reason": ""}

        try:
            if len(td.inputs_count) != 4 or len(td.inputs) != 2:
                raise ShapeMismatch(f"expected 4 input counts and 2 buffers, "
                                    f"got {len(td.inputs_count)} and {len(td.inputs)}")
            rows_a, cols_a, rows_b, cols_b = (int(c) for c in td.inputs_count)

            if min(rows_a, cols_a, rows_b, cols_b) < 0:
                raise ShapeMismatch(f"negative dimension in {td.inputs_count}")
            if cols_a != rows_b:
                raise ShapeMismatch(f"A @ B: A.cols:{cols_a} != B.rows:{rows_b}")

            for name, buffer, count in (("A", td.inputs[0], rows_a * cols_a), ("B", td.inputs[1], rows_b * cols_b)):
                if count == 0:
                    continue
                if buffer is None or np.asarray(buffer).size < count:
                    raise ShapeMismatch(f"{name}: buffer does not hold {count} elements")

            if len(td.outputs) != 1 or len(td.outputs_count) != 1:
                raise ShapeMismatch("expected exactly one output buffer")
            if td.outputs[0] is None and td.outputs_count[0] > 0:
                raise ShapeMismatch("output buffer is missing")

            header["shape"] = (rows_a, cols_a, rows_b, cols_b)
        except (ValueError, TypeError) as e:
            # ShapeMismatch, or counts and buffers that are not numeric
            header["reason"] = f"{type(e).__name__}: {e}"

        return header

    def _validation(self) -> bool:
        header = self._build_header() if self.is_root else None
        self._header = self.comm.bcast(header, root=self.root)

        ok = self._header["shape"] is not None
        if self.verbose and not ok:
            print_on_rank0(f"CannonMatMulTask: validation failed: {self._header['reason']}", comm=self.comm)
        return ok

    ############################################################################
    # Distribution
    ############################################################################

    def _pre_processing(self):
        rows_a, cols_a, _, cols_b = self._header["shape"]

        # Nothing to multiply: C is empty or all zeros
        self._trivial = rows_a * cols_b == 0 or cols_a == 0
        if self._trivial:
            return

        if self._grid is None:
            self._grid = create_grid_comm(self.comm)
        grid = self._grid
        if grid == MPI.COMM_NULL:
            return

        q = grid.dims[0]
        self.n_loc = ceil(rows_a / q)
        self.k_loc = ceil(cols_a / q)
        self.m_loc = ceil(cols_b / q)

        a_blocks, b_blocks = None, None
        if grid.Get_rank() == 0:
            td = self.task_data
            A = np.asarray(td.inputs[0], dtype=np.float64).reshape(-1)[:rows_a * cols_a].reshape(rows_a, cols_a)
            B = np.asarray(td.inputs[1], dtype=np.float64).reshape(-1)[:cols_a * cols_b].reshape(cols_a, cols_b)
            a_blocks = _split_blocks(A, q, self.n_loc, self.k_loc)
            b_blocks = _split_blocks(B, q, self.k_loc, self.m_loc)

        self._a_local = grid.scatter(a_blocks, root=0)
        self._b_local = grid.scatter(b_blocks, root=0)

    ############################################################################
    # Cannon's algorithm
    ############################################################################

    def _run(self):
        rows_a, _, _, cols_b = self._header["shape"]

        if self._trivial:
            self.result = np.zeros((rows_a, cols_b)) if self.is_root else None
            return

        grid = self._grid
        if grid == MPI.COMM_NULL:
            return

        q = grid.dims[0]
        row, col = grid.Get_coords(grid.Get_rank())

        C = np.zeros((self.n_loc, self.m_loc))

        # Deep copies for Sendrecv_replace, so run() can repeat
        A_block = self._a_local.copy()
        B_block = self._b_local.copy()

        # Skew (initial alignment): row i shifts A left by i, column j shifts B up by j
        if row > 0:
            src, dst = grid.Shift(1, -row)
            grid.Sendrecv_replace(A_block, dest=dst, source=src)
        if col > 0:
            src, dst = grid.Shift(0, -col)
            grid.Sendrecv_replace(B_block, dest=dst, source=src)

        for step in range(q):
            # Multiply and accumulate
            _matmat(A_block, B_block, C)

            if step == q - 1:
                break

            # Shift A left
            src, dst = grid.Shift(1, -1)
            grid.Sendrecv_replace(A_block, dest=dst, source=src)

            # Shift B up
            src, dst = grid.Shift(0, -1)
            grid.Sendrecv_replace(B_block, dest=dst, source=src)

        blocks = grid.gather(C, root=0)
        if grid.Get_rank() == 0:
            full = np.zeros((q * self.n_loc, q * self.m_loc))
            for i, block in enumerate(blocks):
                r, c = divmod(i, q)
                full[r * self.n_loc:(r + 1) * self.n_loc, c * self.m_loc:(c + 1) * self.m_loc] = block
            self.result = full[:rows_a, :cols_b]

    def _post_processing(self):
        if not self.is_root:
            return

        out = self.task_data.outputs[0]
        needed = self.result.size
        capacity = 0 if out is None else min(int(self.task_data.outputs_count[0]), np.asarray(out).size)
        if needed > capacity:
            raise CapacityExceeded("c", needed, capacity)
        if needed > 0:
            out[:needed] = self.result.reshape(-1)

    def __del__(self):
        grid = getattr(self, "_grid", None)
        if grid is not None and grid != MPI.COMM_NULL and not MPI.Is_finalized():
            try:
                grid.Free()
            except MPI.Exception:
                # It might already be freed during MPI_Finalize
                pass
