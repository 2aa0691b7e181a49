"""ZeroMQ broadcast transport."""

from .node import Node
