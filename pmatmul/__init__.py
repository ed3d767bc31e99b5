# pmatmul/__init__.py

__version__ = "0.1.0"
__all__ = [
    "SparseMatrix", "decode", "encode", "check_structure",
    "validate", "partition", "multiply_columns", "multiply", "assemble",
    "TaskData", "SparseMatMulTask", "CannonMatMulTask",
    "Perf", "PerfAttr", "PerfResults",
    "ShapeMismatch", "CapacityExceeded", "MalformedInput", "TaskStateError",
]   # for explicit export: from pmatmul import *

from .exceptions import ShapeMismatch, CapacityExceeded, MalformedInput, TaskStateError
from .ccs import SparseMatrix, decode, encode, check_structure
from .validation import validate
from .partition import partition
from .gustavson import multiply_columns, multiply
from .assemble import assemble
from .task import TaskData
from .sparse_task import SparseMatMulTask
from .dense_task import CannonMatMulTask
from .perf import Perf, PerfAttr, PerfResults
