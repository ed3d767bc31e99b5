# assemble.py - collect per-rank fragments into one CCS matrix
#
# Fragments own contiguous, disjoint column blocks in rank order, so
# concatenating them in rank order gives the global column order. Only the
# column pointers need rebasing.

import numpy as np

from pmatmul.ccs import INDEX_DTYPE, VALUE_DTYPE, SparseMatrix
from pmatmul.exceptions import MalformedInput


def assemble(partials, rows=None) -> SparseMatrix:
    """
    Concatenate rank-ordered fragments.

    Fragment i's local pointers p become p + offset_i where offset_i is the
    number of entries contributed by ranks < i. Empty fragments contribute no
    columns and no entries.
    """
    partials = list(partials)
    if rows is None:
        if not partials:
            raise ValueError("assemble: no fragments and no row count")
        rows = partials[0].rows

    col_ptr = [np.zeros(1, dtype=INDEX_DTYPE)]
    values, row_indices = [], []
    offset = 0
    next_col = partials[0].start_col if partials and hasattr(partials[0], "start_col") else 0

    for rank, part in enumerate(partials):
        if part.rows != rows:
            raise MalformedInput(f"fragment from rank {rank} has {part.rows} rows, expected {rows}")

        # Fragments must tile the column range in rank order
        start = getattr(part, "start_col", next_col)
        if start != next_col:
            raise MalformedInput(f"fragment from rank {rank} starts at column {start}, expected {next_col}")
        next_col = start + part.cols

        values.append(part.values)
        row_indices.append(part.row_indices)
        col_ptr.append(part.col_ptr[1:] + offset)
        offset += part.nnz

    total_cols = sum(part.cols for part in partials)

    return SparseMatrix(rows, total_cols,
                        np.concatenate(values) if values else np.empty(0, dtype=VALUE_DTYPE),
                        np.concatenate(row_indices) if row_indices else np.empty(0, dtype=INDEX_DTYPE),
                        np.concatenate(col_ptr))


def gather_partials(comm, partial, root=0):
    """
    All-to-one gather of the fragments, ordered by rank.

    Every rank must call this, including ranks with an empty column range.
    Returns the list on root and None elsewhere.
    """
    return comm.gather(partial, root=root)
