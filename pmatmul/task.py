"""
task.py

Four-step lifecycle shared by the kernels:

    validation() -> bool, pre_processing(), run(), post_processing()

Inputs and outputs are flat numpy buffers paired with element counts
(TaskData). Only the root rank needs populated buffers; the other ranks may
pass an empty TaskData and receive what they need through collectives.

Subclasses implement the _validation / _pre_processing / _run /
_post_processing hooks. The public methods enforce the call order.
"""
from mpi4py import MPI

from pmatmul.exceptions import TaskStateError


class TaskData:
    def __init__(self, inputs=None, inputs_count=None, outputs=None, outputs_count=None):
        self.inputs = list(inputs) if inputs is not None else []
        self.inputs_count = list(inputs_count) if inputs_count is not None else []
        self.outputs = list(outputs) if outputs is not None else []
        self.outputs_count = list(outputs_count) if outputs_count is not None else []

    def __repr__(self):
        return f"TaskData(inputs_count={self.inputs_count}, outputs_count={self.outputs_count})"


class Task:
    root = 0
    verbose = False

    def __init__(self, task_data: TaskData = None, comm=None):
        self.task_data = task_data if task_data is not None else TaskData()
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()
        self._state = "created"

    @property
    def is_root(self):
        return self.rank == self.root

    ############################################################################
    # Lifecycle
    ############################################################################

    def validation(self) -> bool:
        ok = bool(self._validation())
        self._state = "validated" if ok else "invalid"
        return ok

    def pre_processing(self):
        self._require("pre_processing", "validated")
        self._pre_processing()
        self._state = "ready"

    def run(self) -> bool:
        # run can repeat without re-running pre_processing
        self._require("run", "ready", "ran")
        self._run()
        self._state = "ran"
        return True

    def post_processing(self):
        self._require("post_processing", "ran")
        self._post_processing()
        self._state = "done"

    def _require(self, step, *states):
        if self._state == "invalid":
            raise TaskStateError(f"{step}() called after validation() returned False")
        if self._state not in states:
            raise TaskStateError(f"{step}() called in state '{self._state}', expected one of {states}")

    ############################################################################
    # Hooks
    ############################################################################

    def _validation(self) -> bool:
        raise NotImplementedError

    def _pre_processing(self):
        raise NotImplementedError

    def _run(self):
        raise NotImplementedError

    def _post_processing(self):
        raise NotImplementedError
