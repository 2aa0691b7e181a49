"""ZeroMQ broadcast transport.

Every node binds a PUB socket and connects a SUB socket to each known peer.
Sealed records are flooded: a node publishes what it posts, and republishes
any record it receives for the first time, so a message reaches every node
in a connected graph. Each node delivers to its own filters whatever its
keys can open.
"""

from __future__ import annotations

import atexit
import logging
import queue
import threading
from typing import Optional, Set, Tuple

import zmq

from ..base import TransportPortError
from ..local import Node as LocalNode, Record
from .framing import FramingError, from_frames, to_frames

logger = logging.getLogger(__name__)

minimum_port = 10139
maximum_port = 13679
zmq_context = zmq.Context()


def _bind(socket, port: Optional[int], avoid: Set[int]) -> int:
    """Bind *socket* to *port*, or the first free port in the default range."""

    if port is not None:
        try:
            socket.bind(f"tcp://*:{int(port)}")
        except zmq.ZMQError as exc:
            raise TransportPortError(f"port already in use: {port}") from exc
        return int(port)

    for trial in range(minimum_port, maximum_port + 1):
        if trial in avoid:
            continue
        try:
            socket.bind(f"tcp://*:{trial}")
        except zmq.ZMQError:
            continue
        return trial

    raise TransportPortError(
        f"no ports available in range {minimum_port}:{maximum_port}"
    )


class Node(LocalNode):
    """Networked transport node.

    Sockets are only ever touched by the node's network thread; other
    threads hand work to it through a queue and an inproc signal socket.
    """

    def __init__(
        self,
        port: Optional[int] = None,
        avoid: Optional[Set[int]] = None,
        min_pow: float = 0.2,
        max_message_size: int = 1024 * 1024,
    ):
        LocalNode.__init__(self, min_pow=min_pow, max_message_size=max_message_size)

        self.publisher = zmq_context.socket(zmq.PUB)
        self.publisher.setsockopt(zmq.LINGER, 0)
        try:
            self.port = _bind(self.publisher, port, avoid or set())
        except TransportPortError:
            self.publisher.close(linger=0)
            LocalNode.close(self)
            raise

        self.subscriber = zmq_context.socket(zmq.SUB)
        self.subscriber.setsockopt(zmq.LINGER, 0)
        self.subscriber.setsockopt(zmq.SUBSCRIBE, b"")

        self.peers: Set[Tuple[str, int]] = set()
        self._outbound: queue.SimpleQueue = queue.SimpleQueue()

        internal = f"inproc://sotto.zmq.Node:signal:{id(self)}"
        self._sig_rx = zmq_context.socket(zmq.PAIR)
        self._sig_rx.bind(internal)
        self._sig_tx = zmq_context.socket(zmq.PAIR)
        self._sig_tx.connect(internal)
        self._sig_lock = threading.Lock()

        self.network = threading.Thread(target=self.run_network, name="sotto-zmq")
        self.network.daemon = True
        self.network.start()

        _nodes.add(self)
        logger.debug("zmq node publishing on port %d", self.port)

    def connect(self, address: str, port: int) -> None:
        """Receive records published by the peer at *address*:*port*."""

        peer = (address, int(port))
        if peer in self.peers:
            return
        self.peers.add(peer)
        self._signal(("connect", f"tcp://{address}:{int(port)}"))

    def broadcast(self, record: Record) -> None:
        self.receive(record)
        self._signal(("publish", to_frames(record)))

    def _signal(self, command) -> None:
        self._outbound.put(command)
        with self._sig_lock:
            self._sig_tx.send(b"")

    def _drain(self) -> None:
        self._sig_rx.recv(flags=zmq.NOBLOCK)

        while True:
            try:
                kind, value = self._outbound.get(block=False)
            except queue.Empty:
                return

            if kind == "publish":
                self.publisher.send_multipart(value)
            elif kind == "connect":
                self.subscriber.connect(value)
                logger.debug("connected to peer %s", value)
            elif kind == "stop":
                self.shutdown = True

    def _incoming(self, parts) -> None:
        try:
            record = from_frames(parts)
        except FramingError as exc:
            logger.warning("dropped record: %s", exc)
            return

        if self.receive(record):
            # First sighting: pass it on to whoever subscribes to us.
            self.publisher.send_multipart(parts)

    def run_network(self) -> None:
        poller = zmq.Poller()
        poller.register(self._sig_rx, zmq.POLLIN)
        poller.register(self.subscriber, zmq.POLLIN)

        while not self.shutdown:
            for active, _flag in poller.poll(1000):
                try:
                    if active == self._sig_rx:
                        self._drain()
                    elif active == self.subscriber:
                        self._incoming(self.subscriber.recv_multipart())
                except zmq.Again:
                    continue
                except Exception:
                    logger.exception("zmq node network loop error")

        for socket in (self.publisher, self.subscriber, self._sig_rx):
            socket.close(linger=0)

    def close(self) -> None:
        if self.shutdown:
            return
        self._signal(("stop", None))
        self.network.join(timeout=5)
        with self._sig_lock:
            self._sig_tx.close(linger=0)
        LocalNode.close(self)
        _nodes.discard(self)


_nodes: Set[Node] = set()


def _cleanup() -> None:
    for node in list(_nodes):
        try:
            node.close()
        except zmq.ZMQError:
            pass


atexit.register(_cleanup)
