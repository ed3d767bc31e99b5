# validation.py - shape checks run before any data moves
#
# Every rank runs validate() on the same broadcast header, so all ranks reach
# the same verdict and either all proceed or all stop.

from collections import namedtuple

from pmatmul.exceptions import ShapeMismatch

# Declared shape of one CCS operand, built from counts only (no data needed)
CCSShape = namedtuple("CCSShape", ["rows", "cols", "nnz", "n_row_indices", "n_col_ptr", "missing"])

N_SPARSE_INPUT_COUNTS = 9      # m, k, n + one count per buffer
N_SPARSE_INPUTS = 6            # (values, row_indices, col_ptr) for A and B
N_SPARSE_OUTPUTS = 3           # (values, row_indices, col_ptr) for C


def shape_of(matrix) -> CCSShape:
    """CCSShape of an already decoded SparseMatrix."""
    return CCSShape(matrix.rows, matrix.cols, matrix.nnz,
                    matrix.row_indices.shape[0], matrix.col_ptr.shape[0], False)


def _operand_shape(rows, buffers, counts) -> CCSShape:
    n_values, n_row_indices, n_col_ptr = counts
    missing = any(b is None and c > 0 for b, c in zip(buffers, counts))
    return CCSShape(rows, max(n_col_ptr - 1, 0), n_values, n_row_indices, n_col_ptr, missing)


def shapes_from_task_data(task_data):
    """
    Read (m, k, n, a_shape, b_shape) from the task buffers.

    inputs_count is [m, k, n, |a.values|, |a.row_indices|, |a.col_ptr|,
    |b.values|, |b.row_indices|, |b.col_ptr|] and inputs holds the six buffers
    in the same order.
    """
    counts = list(task_data.inputs_count)
    if len(counts) != N_SPARSE_INPUT_COUNTS:
        raise ShapeMismatch(f"expected {N_SPARSE_INPUT_COUNTS} input counts, got {len(counts)}")
    if len(task_data.inputs) != N_SPARSE_INPUTS:
        raise ShapeMismatch(f"expected {N_SPARSE_INPUTS} input buffers, got {len(task_data.inputs)}")

    m, k, n = (int(c) for c in counts[:3])
    a = _operand_shape(m, task_data.inputs[0:3], [int(c) for c in counts[3:6]])
    b = _operand_shape(k, task_data.inputs[3:6], [int(c) for c in counts[6:9]])
    return m, k, n, a, b


def check_outputs(task_data):
    if len(task_data.outputs) != N_SPARSE_OUTPUTS or len(task_data.outputs_count) != N_SPARSE_OUTPUTS:
        raise ShapeMismatch(f"expected {N_SPARSE_OUTPUTS} output buffers with counts, "
                            f"got {len(task_data.outputs)} buffers and {len(task_data.outputs_count)} counts")
    for i, (buffer, count) in enumerate(zip(task_data.outputs, task_data.outputs_count)):
        if buffer is None and count > 0:
            raise ShapeMismatch(f"output {i} is missing but has capacity {count}")


def _check_operand(name, shape: CCSShape):
    if min(shape.nnz, shape.n_row_indices, shape.n_col_ptr) < 0:
        raise ShapeMismatch(f"{name}: negative buffer count in "
                            f"({shape.nnz}, {shape.n_row_indices}, {shape.n_col_ptr})")
    if shape.missing:
        raise ShapeMismatch(f"{name}: a buffer is missing while its count is non-zero")
    if shape.nnz != shape.n_row_indices:
        raise ShapeMismatch(f"{name}: {shape.nnz} values but {shape.n_row_indices} row indices")
    if shape.n_col_ptr != shape.cols + 1 and not (shape.cols == 0 and shape.n_col_ptr == 0):
        raise ShapeMismatch(f"{name}: col_ptr count {shape.n_col_ptr} for {shape.cols} columns")


def check_shapes(m, k, n, a: CCSShape, b: CCSShape):
    """Raise ShapeMismatch describing the first inconsistency found."""
    if m < 0 or k < 0 or n < 0:
        raise ShapeMismatch(f"negative dimension in m={m}, k={k}, n={n}")

    # A zero dimension is only fine when the matrices it bounds are empty
    if m == 0 and a.nnz > 0:
        raise ShapeMismatch(f"m=0 but A has {a.nnz} entries")
    if k == 0 and (a.nnz > 0 or b.nnz > 0):
        raise ShapeMismatch(f"k=0 but A has {a.nnz} and B has {b.nnz} entries")
    if n == 0 and b.nnz > 0:
        raise ShapeMismatch(f"n=0 but B has {b.nnz} entries")

    # Unreachable from task buffers, where rows come from m and k; kept for
    # hand-built descriptors. Row indices are bounded by check_structure.
    if a.rows != m:
        raise ShapeMismatch(f"A has {a.rows} rows, m={m}")
    if a.cols != k:
        raise ShapeMismatch(f"A @ B: A.cols:{a.cols} != k:{k}")
    if b.rows != k:
        raise ShapeMismatch(f"A @ B: B.rows:{b.rows} != k:{k}")
    if b.cols != n:
        raise ShapeMismatch(f"B has {b.cols} columns, n={n}")

    _check_operand("A", a)
    _check_operand("B", b)


def validate(m, k, n, a: CCSShape, b: CCSShape) -> bool:
    try:
        check_shapes(m, k, n, a, b)
    except ShapeMismatch:
        return False
    return True
