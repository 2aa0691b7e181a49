"""Transport layer implementations."""

import os

from .base import (
    Criteria,
    Envelope,
    Event,
    Info,
    InvalidEnvelope,
    MessageRejected,
    Transport,
    TransportError,
    TransportPortError,
    UnknownKey,
)
from . import local


def default(**kwargs):
    """ Return a new transport node of the kind named by the SOTTO_TRANSPORT
        environment variable: 'local' (the default) for an in-process node,
        or 'zmq' for a ZeroMQ broadcast node. Keyword arguments are passed
        to the node constructor.
    """

    backend = os.environ.get('SOTTO_TRANSPORT', 'local')

    if backend == 'local':
        return local.Node(**kwargs)

    if backend == 'zmq':
        from . import zmq
        return zmq.Node(**kwargs)

    raise ValueError(f"unknown SOTTO_TRANSPORT backend: {backend!r}")
