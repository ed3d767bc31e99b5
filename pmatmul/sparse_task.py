"""
sparse_task.py

Distributed C = A @ B for CCS matrices.

    validation        root reads counts, decodes and checks structure, then
                      broadcasts a header; every rank validates the header
    pre_processing    column bounds per rank, A broadcast in full, B scattered
                      as column slices
    run               local Gustavson on the slice, gather by rank, assemble
                      on the root
    post_processing   root writes C into the output buffers

Buffer layout (root only):
    inputs_count = [m, k, n, |a.values|, |a.row_indices|, |a.col_ptr|,
                    |b.values|, |b.row_indices|, |b.col_ptr|]
    inputs       = [a.values, a.row_indices, a.col_ptr,
                    b.values, b.row_indices, b.col_ptr]
    outputs      = [c.values, c.row_indices, c.col_ptr] with capacities in
                   outputs_count
"""
import numpy as np

from pmatmul.assemble import assemble, gather_partials
from pmatmul.ccs import INDEX_DTYPE, VALUE_DTYPE, SparseMatrix, check_structure, decode, encode
from pmatmul.gustavson import multiply_columns
from pmatmul.partition import column_work, partition_bounds, partition_by_work, range_of
from pmatmul.task import Task
from pmatmul.utilities import dtype_to_mpi, print_on_rank0, print_ordered_by_rank
from pmatmul.validation import check_outputs, check_shapes, shapes_from_task_data, validate


class SparseMatMulTask(Task):
    # "columns": equal column counts, computed locally by every rank
    # "work": equal estimated multiply-adds, computed on the root and broadcast
    partition_policy = "columns"
    drop_zeros = True

    def __init__(self, task_data=None, comm=None):
        super().__init__(task_data, comm)
        self.result = None
        self.bytes_written = 0

        self._header = None
        self._a_full = None
        self._b_full = None

    ############################################################################
    # Validation
    ############################################################################

    def _build_header(self):
        # Root only: everything the other ranks need to reach the same verdict
        header = {"m": 0, "k": 0, "n": 0, "a": None, "b": None,
                  "structure_ok": False, "outputs_ok": False, "reason": ""}
        td = self.task_data

        try:
            m, k, n, a, b = shapes_from_task_data(td)
            header.update(m=m, k=k, n=n, a=a, b=b)
            check_shapes(m, k, n, a, b)
        except (ValueError, TypeError) as e:
            # ShapeMismatch, or counts that are not numbers
            header["reason"] = str(e)
            return header

        try:
            counts = [int(c) for c in td.inputs_count]
            self._a_full = decode(*td.inputs[0:3], rows=m, cols=k, counts=counts[3:6])
            self._b_full = decode(*td.inputs[3:6], rows=k, cols=n, counts=counts[6:9])
            check_structure(self._a_full)
            check_structure(self._b_full)
            header["structure_ok"] = True
        except (ValueError, TypeError) as e:
            # MalformedInput, or buffers numpy cannot convert
            header["reason"] = f"{type(e).__name__}: {e}"
            return header

        try:
            check_outputs(td)
            header["outputs_ok"] = True
        except (ValueError, TypeError) as e:
            header["reason"] = str(e)

        return header

    def _validation(self) -> bool:
        header = self._build_header() if self.is_root else None
        header = self.comm.bcast(header, root=self.root)
        self._header = header

        ok = (header["a"] is not None and header["b"] is not None
              and validate(header["m"], header["k"], header["n"], header["a"], header["b"])
              and header["structure_ok"] and header["outputs_ok"])

        if self.verbose and not ok:
            print_on_rank0(f"SparseMatMulTask: validation failed: {header['reason']}", comm=self.comm)
        return ok

    ############################################################################
    # Distribution
    ############################################################################

    def _column_bounds(self, n):
        if self.partition_policy == "columns":
            # Pure function of (n, size): no message needed
            return partition_bounds(n, self.size)
        elif self.partition_policy == "work":
            bounds = None
            if self.is_root:
                bounds = partition_by_work(column_work(self._a_full, self._b_full), self.size)
            return self.comm.bcast(bounds, root=self.root)
        else:
            raise ValueError("partition_policy must be one of 'columns' or 'work'")

    def _broadcast_a(self, m, k, nnz):
        if self.is_root:
            a = self._a_full
            values = np.ascontiguousarray(a.values, dtype=VALUE_DTYPE)
            row_indices = np.ascontiguousarray(a.row_indices, dtype=INDEX_DTYPE)
            col_ptr = np.ascontiguousarray(a.col_ptr, dtype=INDEX_DTYPE)
        else:
            values = np.empty(nnz, dtype=VALUE_DTYPE)
            row_indices = np.empty(nnz, dtype=INDEX_DTYPE)
            col_ptr = np.empty(k + 1, dtype=INDEX_DTYPE)

        for arr in (values, row_indices, col_ptr):
            self.comm.Bcast([arr, dtype_to_mpi(arr.dtype)], root=self.root)

        return SparseMatrix(m, k, values, row_indices, col_ptr)

    def _pre_processing(self):
        h = self._header
        m, k, n = h["m"], h["k"], h["n"]

        bounds = self._column_bounds(n)
        self._col_range = range_of(bounds, self.rank)

        # Any column of B may reference any column of A, so A goes everywhere
        self._a = self._broadcast_a(m, k, h["a"].nnz)

        blocks = None
        if self.is_root:
            blocks = [self._b_full.column_slice(*range_of(bounds, r)) for r in range(self.size)]
        self._b_local = self.comm.scatter(blocks, root=self.root)

    ############################################################################
    # Compute and gather
    ############################################################################

    def _run(self):
        start, end = self._col_range

        partial = multiply_columns(self._a, self._b_local, (0, end - start),
                                   drop_zeros=self.drop_zeros, start_col=start)

        if self.verbose:
            print_ordered_by_rank(f"rank {self.rank}: columns [{start}, {end}) nnz={partial.nnz}", comm=self.comm)

        # Empty ranges still take part so the gather stays well formed
        partials = gather_partials(self.comm, partial, root=self.root)
        self.result = assemble(partials, rows=self._header["m"]) if self.is_root else None

    def _post_processing(self):
        # Only the root's buffers are authoritative
        if not self.is_root:
            return

        out = self.task_data.outputs
        capacities = [int(c) for c in self.task_data.outputs_count]
        self.bytes_written = encode(self.result, out[0], out[1], out[2], *capacities)

        if self.verbose:
            print(f"SparseMatMulTask: C is {self.result.rows}x{self.result.cols} "
                  f"with nnz={self.result.nnz}, {self.bytes_written} bytes written", flush=True)
