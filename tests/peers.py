""" Test doubles and helpers shared by the test modules.
"""

import threading

import sotto
from sotto.transport.base import Info, Transport, UnknownKey


class RecordingTransport(Transport):
    """ A transport that performs no delivery on its own. Posted envelopes
        and installed filters are recorded, and the test decides when (and
        whether) to deliver an event by calling :func:`deliver`.
    """

    def __init__(self, min_pow=0.2):
        self.min_pow = min_pow
        self.posted = list()
        self.filters = dict()
        self.removed = list()
        self.pairs = dict()
        self.symmetric = dict()
        self.counter = 0

    def _next(self, prefix):
        self.counter += 1
        return '%s%d' % (prefix, self.counter)

    def info(self):
        return Info(min_pow=self.min_pow)

    def post(self, envelope):
        self.posted.append(envelope)
        return self._next('0xhash')

    def subscribe(self, criteria, callback):
        handle = self._next('filter')
        self.filters[handle] = (criteria, callback)
        return handle

    def unsubscribe(self, handle):
        self.removed.append(handle)
        return self.filters.pop(handle, None) is not None

    def deliver(self, handle, event):
        criteria, callback = self.filters[handle]
        callback(event)

    def new_key_pair(self):
        key_id = self._next('pair')
        self.pairs[key_id] = '0x04' + key_id.encode().hex()
        return key_id

    def new_sym_key(self):
        key_id = self._next('sym')
        self.symmetric[key_id] = '0x' + key_id.encode().hex()
        return key_id

    def sym_key_from_password(self, password):
        key_id = self._next('sym')
        self.symmetric[key_id] = '0x' + password.encode().hex()
        return key_id

    def get_public_key(self, key_id):
        try:
            return self.pairs[key_id]
        except KeyError:
            raise UnknownKey(key_id) from None

    def get_private_key(self, key_id):
        return self.get_public_key(key_id).replace('0x04', '0x')

    def get_sym_key(self, key_id):
        try:
            return self.symmetric[key_id]
        except KeyError:
            raise UnknownKey(key_id) from None


def configured(node, topic, password=None, key_pair=False):
    """ Return a Session on *node*, configured the same way for every peer
        in a conversation test.
    """

    session = sotto.Session(node)
    session.config({'topic': topic})

    if password is not None:
        session.use_new_sym_key(password)
    if key_pair:
        session.use_new_key_pair()

    return session


class Inbox:
    """ Thread-safe collector for messages delivered on a dispatch thread.
    """

    def __init__(self):
        self.messages = list()
        self.event = threading.Event()
        self.lock = threading.Lock()

    def __call__(self, message):
        with self.lock:
            self.messages.append(message)
        self.event.set()

    def wait(self, timeout=5):
        return self.event.wait(timeout)

    @property
    def payloads(self):
        with self.lock:
            return [message.payload for message in self.messages]
