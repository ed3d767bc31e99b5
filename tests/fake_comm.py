# fake_comm.py - in-process communicator for running several ranks as threads
#
# Implements the collectives the sparse kernel uses (bcast, Bcast, scatter,
# gather, Barrier) on top of a shared slot list and a barrier. Objects are
# deep-copied on the way through, like pickling would.

import copy
import threading

import numpy as np

BARRIER_TIMEOUT = 60.0


class ThreadWorld:
    def __init__(self, size):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=BARRIER_TIMEOUT)
        self.slots = [None] * size


class ThreadComm:
    def __init__(self, world: ThreadWorld, rank: int):
        self.world = world
        self.rank = rank
        self.size = world.size

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.size

    def Barrier(self):
        self.world.barrier.wait()

    def _exchange(self, obj):
        # Everyone posts, everyone reads, nobody overwrites before all have read
        self.world.slots[self.rank] = obj
        self.world.barrier.wait()
        posted = list(self.world.slots)
        self.world.barrier.wait()
        return posted

    def bcast(self, obj, root=0):
        return copy.deepcopy(self._exchange(obj)[root])

    def gather(self, obj, root=0):
        posted = self._exchange(obj)
        return [copy.deepcopy(x) for x in posted] if self.rank == root else None

    def scatter(self, objs, root=0):
        posted = self._exchange(objs)
        return copy.deepcopy(posted[root][self.rank])

    def Bcast(self, buf, root=0):
        arr = buf[0] if isinstance(buf, (list, tuple)) else buf
        posted = self._exchange(arr)
        if self.rank != root:
            np.copyto(arr, posted[root])
        self.world.barrier.wait()


def run_workers(size, fn):
    """
    Call fn(comm) on `size` threads, one per rank, and return the results in
    rank order. The first exception raised by any rank is re-raised.
    """
    world = ThreadWorld(size)
    results = [None] * size
    errors = [None] * size

    def target(rank):
        try:
            results[rank] = fn(ThreadComm(world, rank))
        except BaseException as e:
            errors[rank] = e
            # Release ranks waiting in a collective
            world.barrier.abort()

    threads = [threading.Thread(target=target, args=(rank,)) for rank in range(size)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # Prefer a real error over the BrokenBarrierError it caused on other ranks
    real = [e for e in errors if e is not None and not isinstance(e, threading.BrokenBarrierError)]
    if real:
        raise real[0]
    for e in errors:
        if e is not None:
            raise e
    return results
