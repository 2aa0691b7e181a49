""" Python implementation of sotto, a session layer over topic-addressed,
    end-to-end encrypted publish/subscribe transports. The session decides
    how each message is addressed, merges per-call options with session-wide
    defaults, and lets message handlers reply to the sender directly.
"""

# Utility components.

from . import json
from . import options
from . import topic

# Transport contract and implementations.

from . import transport

# Primary public-facing interfaces.

from .message import IncomingMessage, Reply, Unaddressable
from .options import Options
from .session import Session

to_topic = topic.to_topic
is_topic = topic.is_topic

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
