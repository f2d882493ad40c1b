"""Halo exchange implementations for distributed grids.

Every existing neighbor gets a directional Channel. Boundary rows travel
as contiguous spans, boundary columns are packed into contiguous buffers
before sending and unpacked after receipt. Sides without a neighbor keep
their Dirichlet value and are never touched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from ..datastructures import DIRECTIONS, HALO_EXCHANGES
from ..errors import ConfigurationError

# Tag of a message by the direction it travels in
TAGS = {"up": 1, "down": 2, "left": 3, "right": 4}

OPPOSITE = {"up": "down", "down": "up", "left": "right", "right": "left"}

# (direction sent towards, direction received from), one shift per phase
_PHASES = [("down", "up"), ("up", "down"), ("right", "left"), ("left", "right")]


class Channel:
    """Point-to-point link to the neighbor on one side.

    Data sent on the channel travels towards the neighbor; data received
    on it was sent by the neighbor towards us, hence the opposite tag.
    """

    def __init__(self, comm, direction: str, peer: int):
        self.comm = comm
        self.direction = direction
        self.peer = peer
        self.send_tag = TAGS[direction]
        self.recv_tag = TAGS[OPPOSITE[direction]]

    def send(self, buf: np.ndarray):
        self.comm.Send(buf, dest=self.peer, tag=self.send_tag)

    def receive(self, buf: np.ndarray):
        self.comm.Recv(buf, source=self.peer, tag=self.recv_tag)

    def post_send(self, buf: np.ndarray):
        return self.comm.Isend(buf, dest=self.peer, tag=self.send_tag)

    def post_receive(self, buf: np.ndarray):
        return self.comm.Irecv(buf, source=self.peer, tag=self.recv_tag)

    def __repr__(self):
        return f"Channel({self.direction} -> rank {self.peer})"


class HaloExchanger(ABC):
    """Abstract base for halo exchange strategies."""

    def setup(self, layout, comm, dtype):
        """Open channels and pre-allocate column pack buffers."""
        self.comm = comm
        self.channels = {
            d: Channel(comm, d, layout.neighbors[d])
            for d in DIRECTIONS
            if layout.has_neighbor(d)
        }
        rows, _ = layout.local_shape
        self._send_bufs = {}
        self._recv_bufs = {}
        for d in ("left", "right"):
            if d in self.channels:
                self._send_bufs[d] = np.empty(rows, dtype=dtype)
                self._recv_bufs[d] = np.empty(rows, dtype=dtype)

    @abstractmethod
    def exchange(self, grid):
        """Refresh every halo of ``grid`` from the neighbors' edges."""


class SendrecvHaloExchanger(HaloExchanger):
    """Halo exchange as paired blocking shifts.

    Each phase moves data one way along an axis: every rank sends towards
    one side while receiving from the other, so every send meets the
    receive its partner posts in the same phase. Chain ends send or receive
    only.
    """

    def exchange(self, grid):
        for send_dir, recv_dir in _PHASES:
            send_ch = self.channels.get(send_dir)
            recv_ch = self.channels.get(recv_dir)
            if send_ch is None and recv_ch is None:
                continue

            if send_ch is not None:
                send_buf = grid.pack(send_dir, self._send_bufs.get(send_dir))
            if recv_ch is not None:
                recv_buf = grid.receive_buffer(recv_dir, self._recv_bufs.get(recv_dir))

            if send_ch is not None and recv_ch is not None:
                self.comm.Sendrecv(
                    send_buf, dest=send_ch.peer, sendtag=send_ch.send_tag,
                    recvbuf=recv_buf, source=recv_ch.peer, recvtag=recv_ch.recv_tag,
                )
            elif send_ch is not None:
                send_ch.send(send_buf)
            else:
                recv_ch.receive(recv_buf)

            if recv_ch is not None:
                grid.unpack(recv_dir, recv_buf)


class NonblockingHaloExchanger(HaloExchanger):
    """Halo exchange with Isend/Irecv on every channel and a wait on all.

    Ordering between directions is irrelevant: all receives are posted
    first and nothing is unpacked before every request completed.
    """

    def exchange(self, grid):
        requests = []
        recv_bufs = {}
        for d, ch in self.channels.items():
            recv_bufs[d] = grid.receive_buffer(d, self._recv_bufs.get(d))
            requests.append(ch.post_receive(recv_bufs[d]))
        for d, ch in self.channels.items():
            requests.append(ch.post_send(grid.pack(d, self._send_bufs.get(d))))

        for req in requests:
            req.Wait()

        for d, buf in recv_bufs.items():
            grid.unpack(d, buf)


def create_halo_exchanger(exchange_type: str) -> HaloExchanger:
    """Factory: 'nonblocking' for Isend/Irecv + wait, 'sendrecv' for paired shifts."""
    if exchange_type == "nonblocking":
        return NonblockingHaloExchanger()
    elif exchange_type == "sendrecv":
        return SendrecvHaloExchanger()
    else:
        raise ConfigurationError(
            f"Unknown halo_exchange type: {exchange_type}. Use one of {', '.join(HALO_EXCHANGES)}."
        )
