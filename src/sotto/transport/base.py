"""Transport interface.

This is the (small) contract a transport must satisfy for a
:class:`sotto.session.Session` to drive it. Encryption, proof of work,
propagation and filter matching are all the transport's business; the
session only ever deals in the records defined here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class UnknownKey(TransportError):
    """A key id does not refer to any key held by the transport."""


class InvalidEnvelope(TransportError):
    """An outbound envelope is malformed (addressing, topic, ttl...)."""


class MessageRejected(TransportError):
    """A well-formed envelope was refused, e.g. insufficient proof of work."""


class TransportPortError(TransportError):
    """No suitable port could be bound or connected."""


@dataclass
class Envelope:
    """Outbound message, as handed to :meth:`Transport.post`."""

    topic: str
    payload: bytes
    ttl: int
    pow_time: Optional[int] = None
    pow_target: Optional[float] = None
    sym_key_id: Optional[str] = None
    pub_key: Optional[str] = None
    sig: Optional[str] = None
    padding: Optional[bytes] = None
    target_peer: Optional[str] = None


@dataclass
class Criteria:
    """Subscription filter, as handed to :meth:`Transport.subscribe`."""

    topics: List[str] = field(default_factory=list)
    sym_key_id: Optional[str] = None
    private_key_id: Optional[str] = None
    sig: Optional[str] = None
    min_pow: Optional[float] = None
    allow_p2p: Optional[bool] = None


@dataclass
class Event:
    """A delivered message. *sig* is the sender public key, if signed."""

    payload: bytes
    topic: str
    sig: Optional[str] = None
    hash: Optional[str] = None
    ttl: Optional[int] = None
    timestamp: Optional[float] = None
    pow: Optional[float] = None
    recipient_public_key: Optional[str] = None
    padding: Optional[bytes] = None


@dataclass
class Info:
    """Transport capabilities."""

    min_pow: float
    max_message_size: int = 0
    memory: int = 0
    messages: int = 0


Callback = Callable[[Event], None]


class Transport(ABC):
    """Minimal contract for a topic-addressed encrypted transport."""

    @abstractmethod
    def info(self) -> Info:
        """Return the transport capabilities."""

    @abstractmethod
    def post(self, envelope: Envelope) -> str:
        """Send *envelope*; return the message hash."""

    @abstractmethod
    def subscribe(self, criteria: Criteria, callback: Callback) -> str:
        """Install a message filter; return its handle."""

    @abstractmethod
    def unsubscribe(self, handle: str) -> bool:
        """Remove a message filter; return whether it existed."""

    @abstractmethod
    def new_key_pair(self) -> str:
        """Generate a key pair; return its id."""

    @abstractmethod
    def new_sym_key(self) -> str:
        """Generate a random symmetric key; return its id."""

    @abstractmethod
    def sym_key_from_password(self, password: str) -> str:
        """Derive a symmetric key from *password*; return its id."""

    @abstractmethod
    def get_public_key(self, key_id: str) -> str:
        """Return the hex public key of key pair *key_id*."""

    @abstractmethod
    def get_private_key(self, key_id: str) -> str:
        """Return the hex private key of key pair *key_id*."""

    @abstractmethod
    def get_sym_key(self, key_id: str) -> str:
        """Return the hex symmetric key *key_id*."""

    def close(self) -> None:
        """Release any resources held by the transport."""
