"""Shared fixtures: an in-process SPMD harness.

``ThreadComm`` implements the subset of the mpi4py communicator API the
solver uses, with one thread per rank. Point-to-point messages are copied
into per-(source, dest, tag) queues, so sends never block; collectives
meet at a shared barrier.
"""

import queue
import threading
from collections import defaultdict

import numpy as np
import pytest

TIMEOUT = 30.0


class Aborted(RuntimeError):
    """Raised by ThreadComm.Abort."""


class _World:
    def __init__(self, size):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=TIMEOUT)
        self.slots = [None] * size
        self._lock = threading.Lock()
        self._queues = defaultdict(queue.Queue)
        self.abort_code = None

    def channel(self, source, dest, tag):
        with self._lock:
            return self._queues[(source, dest, tag)]


class _Request:
    def __init__(self, complete=None):
        self._complete = complete

    def Wait(self):
        if self._complete is not None:
            self._complete()
            self._complete = None


class ThreadComm:
    """Communicator of one rank inside a _World."""

    def __init__(self, world, rank):
        self.world = world
        self.rank = rank

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.world.size

    # Point-to-point

    def Send(self, buf, dest, tag=0):
        self.world.channel(self.rank, dest, tag).put(np.array(buf, copy=True))

    def Recv(self, buf, source, tag=0):
        data = self.world.channel(source, self.rank, tag).get(timeout=TIMEOUT)
        np.copyto(buf, data.reshape(buf.shape))

    def Sendrecv(self, sendbuf, dest, sendtag=0, recvbuf=None, source=0, recvtag=0):
        self.Send(sendbuf, dest, sendtag)
        self.Recv(recvbuf, source, recvtag)

    def Isend(self, buf, dest, tag=0):
        self.Send(buf, dest, tag)
        return _Request()

    def Irecv(self, buf, source, tag=0):
        return _Request(lambda: self.Recv(buf, source, tag))

    # Collectives

    def Barrier(self):
        self.world.barrier.wait()

    def _exchange(self, value):
        """Publish value, wait for every rank, return all values in rank order."""
        self.world.slots[self.rank] = value
        self.world.barrier.wait()
        values = list(self.world.slots)
        self.world.barrier.wait()
        return values

    def Allreduce(self, sendbuf, recvbuf):
        values = self._exchange(np.array(sendbuf, copy=True))
        total = values[0].copy()
        for v in values[1:]:
            total += v
        np.copyto(recvbuf, total)

    def Gather(self, sendbuf, recvbuf, root=0):
        values = self._exchange(np.array(sendbuf, copy=True))
        if self.rank == root:
            for r, v in enumerate(values):
                recvbuf[r] = v.reshape(-1)

    def gather(self, obj, root=0):
        values = self._exchange(obj)
        return values if self.rank == root else None

    def Abort(self, errorcode=0):
        self.world.abort_code = errorcode
        self.world.barrier.abort()
        raise Aborted(f"Abort({errorcode}) called by rank {self.rank}")


def run_spmd(size, target):
    """Run ``target(comm)`` on ``size`` threads; return per-rank results.

    The first exception raised by any rank is re-raised after every thread
    finished. A failing rank breaks the barrier so peers do not hang.
    """
    world = _World(size)
    results = [None] * size
    errors = [None] * size

    def worker(rank):
        try:
            results[rank] = target(ThreadComm(world, rank))
        except BaseException as e:
            errors[rank] = e
            world.barrier.abort()

    threads = [threading.Thread(target=worker, args=(r,), daemon=True) for r in range(size)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=4 * TIMEOUT)

    # Prefer the original failure over the BrokenBarrierErrors it caused
    failures = [e for e in errors if e is not None]
    primary = [e for e in failures if not isinstance(e, threading.BrokenBarrierError)]
    if primary or failures:
        raise (primary or failures)[0]
    if any(t.is_alive() for t in threads):
        raise TimeoutError("SPMD run did not finish")
    return results


@pytest.fixture(scope="session")
def spmd():
    """Run a function on every rank of an in-process communicator."""
    return run_spmd


@pytest.fixture
def single_comm():
    """Communicator of a one-rank world."""
    return ThreadComm(_World(1), 0)

