"""
perf.py

Repeated timing of a task.

    pipeline_run    validation + pre_processing + run + post_processing,
                    num_running times, averaged
    task_run        validation and pre_processing once, run() timed
                    num_running times, then post_processing once

The timer is a callback (MPI.Wtime by default) so callers can plug in their
own clock. Reported time is the slowest rank's average.
"""
import warnings

from mpi4py import MPI

from pmatmul.utilities import get_memory_usage, print_on_rank0, time_it

MAX_TIME = 10.0     # seconds, average per iteration


class PerfAttr:
    def __init__(self, num_running=10, current_timer=MPI.Wtime, warmups=0):
        self.num_running = num_running
        self.current_timer = current_timer
        self.warmups = warmups


class PerfResults:
    NONE, PIPELINE, TASK_RUN = "none", "pipeline", "task_run"

    def __init__(self):
        self.time_sec = 0.0
        self.min_time_sec = 0.0
        self.type_of_running = PerfResults.NONE
        self.memory_bytes = 0
        self.memory_label = ""

    def __repr__(self):
        return f"PerfResults({self.type_of_running}, time_sec={self.time_sec:.6f})"


class Perf:
    def __init__(self, task):
        self.task = task
        self.comm = task.comm

    def _pipeline(self):
        if not self.task.validation():
            raise RuntimeError(f"{type(self.task).__name__}: validation failed")
        self.task.pre_processing()
        self.task.run()
        self.task.post_processing()

    def _finish(self, perf_results, min_t, mean_t, type_of_running):
        # The slowest rank decides
        perf_results.time_sec = self.comm.allreduce(mean_t, op=MPI.MAX)
        perf_results.min_time_sec = self.comm.allreduce(min_t, op=MPI.MAX)
        perf_results.type_of_running = type_of_running
        perf_results.memory_bytes, perf_results.memory_label = get_memory_usage()
        return perf_results

    def pipeline_run(self, perf_attr: PerfAttr, perf_results: PerfResults) -> PerfResults:
        min_t, mean_t = time_it(self._pipeline, repeat=perf_attr.num_running,
                                warmups=perf_attr.warmups, timer_fn=perf_attr.current_timer)
        return self._finish(perf_results, min_t, mean_t, PerfResults.PIPELINE)

    def task_run(self, perf_attr: PerfAttr, perf_results: PerfResults) -> PerfResults:
        if not self.task.validation():
            raise RuntimeError(f"{type(self.task).__name__}: validation failed")
        self.task.pre_processing()

        min_t, mean_t = time_it(self.task.run, repeat=perf_attr.num_running,
                                warmups=perf_attr.warmups, timer_fn=perf_attr.current_timer)

        self.task.post_processing()
        return self._finish(perf_results, min_t, mean_t, PerfResults.TASK_RUN)

    @staticmethod
    def print_perf_statistic(perf_results: PerfResults, name="task", comm=None):
        comm = comm if comm is not None else MPI.COMM_WORLD
        mem_mb = perf_results.memory_bytes / 1024**2
        print_on_rank0(f"{name}:{perf_results.type_of_running}:{perf_results.time_sec:.10f} "
                       f"(min {perf_results.min_time_sec:.10f}, {perf_results.memory_label} {mem_mb:.1f} MB)",
                       comm=comm)

        # Once, next to the printed statistic
        if perf_results.time_sec > MAX_TIME and comm.Get_rank() == 0:
            warnings.warn(f"{name}: average time {perf_results.time_sec:.3f} s is over the {MAX_TIME} s limit")
