""" In-process transport. A :class:`Node` holds key material, seals every
    posted envelope exactly as a networked node would, and delivers it to
    the matching filters from a single background dispatch thread. Several
    sessions may share one node, in which case they can talk to each other;
    this is also the base class for the ZeroMQ transport, which adds the
    network on top of the same matching logic.
"""

import logging
import queue
import threading
import time
import uuid

from . import keys
from . import seal
from .. import topic as topics
from .base import (
    Event,
    Info,
    InvalidEnvelope,
    MessageRejected,
    Transport,
)

logger = logging.getLogger(__name__)


class Record:
    """ A sealed envelope as it travels between nodes. The *body* is opaque
        to everyone except holders of the right key.
    """

    __slots__ = ('topic', 'body', 'ttl', 'pow', 'timestamp', 'hash', 'target_peer')

    def __init__(self, topic, body, ttl, pow, timestamp=None, hash=None, target_peer=None):

        topic = topic.lower()

        if timestamp is None:
            timestamp = time.time()

        if hash is None:
            hash = seal.message_hash(topic, body)

        self.topic = topic
        self.body = body
        self.ttl = ttl
        self.pow = pow
        self.timestamp = timestamp
        self.hash = hash
        self.target_peer = target_peer


    def expired(self, now=None):
        if now is None:
            now = time.time()
        return self.timestamp + self.ttl < now


# end of class Record



class _Filter:

    def __init__(self, criteria, callback, sym_key, private_key):
        self.criteria = criteria
        self.callback = callback
        self.sym_key = sym_key
        self.private_key = private_key
        self.topics = set(topic.lower() for topic in criteria.topics)

        if criteria.sig is None:
            self.sig = None
        else:
            self.sig = keys.tohex(keys.unhex(criteria.sig))


    def match(self, record):
        """ Return an :class:`Event` if *record* passes this filter,
            otherwise None.
        """

        criteria = self.criteria

        if self.topics and record.topic not in self.topics:
            return None

        if criteria.min_pow is not None and record.pow < criteria.min_pow:
            return None

        if record.target_peer is not None and not criteria.allow_p2p:
            return None

        opened = seal.try_open(record.topic, record.body, self.sym_key, self.private_key)
        if opened is None:
            return None

        if self.sig is not None and opened.sig != self.sig:
            return None

        recipient = None
        if self.private_key is not None:
            recipient = keys.tohex(keys.public_bytes(self.private_key.public_key()))

        return Event(payload=opened.payload, topic=record.topic, sig=opened.sig,
                     hash=record.hash, ttl=record.ttl, timestamp=record.timestamp,
                     pow=record.pow, recipient_public_key=recipient,
                     padding=opened.padding or None)


# end of class _Filter



class Node(Transport):
    """ Transport implementation that never leaves the process. The
        *min_pow* is advertised via :func:`info` and enforced on
        :func:`post`; no actual proof of work is computed, the declared
        target of the envelope is taken at face value.
    """

    def __init__(self, min_pow=0.2, max_message_size=1024 * 1024):

        self.min_pow = float(min_pow)
        self.max_message_size = int(max_message_size)
        self.keys = keys.KeyStore()
        self.messages = 0

        self._filters = dict()
        self._filters_lock = threading.Lock()
        self._seen = dict()
        self._queue = queue.SimpleQueue()
        self.expire_interval = 1.0

        self.shutdown = False
        self.thread = threading.Thread(target=self.run, name='sotto-dispatch')
        self.thread.daemon = True
        self.thread.start()


    # Key material.

    def new_key_pair(self):
        key_id = self.keys.new_key_pair()
        logger.debug('new key pair %s', key_id)
        return key_id

    def new_sym_key(self):
        key_id = self.keys.new_sym_key()
        logger.debug('new symmetric key %s', key_id)
        return key_id

    def sym_key_from_password(self, password):
        key_id = self.keys.sym_key_from_password(password)
        logger.debug('new password-derived symmetric key %s', key_id)
        return key_id

    def get_public_key(self, key_id):
        return self.keys.get_public_key(key_id)

    def get_private_key(self, key_id):
        return self.keys.get_private_key(key_id)

    def get_sym_key(self, key_id):
        return self.keys.get_sym_key(key_id)


    def info(self):
        return Info(min_pow=self.min_pow, max_message_size=self.max_message_size,
                    memory=len(self._seen), messages=self.messages)


    def post(self, envelope):
        """ Validate, sign and seal the *envelope*, then hand it off for
            delivery. Returns the hash of the sealed message.
        """

        self._validate(envelope)

        signer = None
        if envelope.sig is not None:
            signer = self.keys.private_key(envelope.sig)

        inner = seal.frame(envelope.payload, envelope.padding, signer)

        if envelope.sym_key_id is not None:
            key = self.keys.sym_key(envelope.sym_key_id)
            body = seal.seal_symmetric(key, envelope.topic, inner)
        else:
            public = keys.load_public(envelope.pub_key)
            body = seal.seal_asymmetric(public, envelope.topic, inner)

        record = Record(envelope.topic, body, int(envelope.ttl),
                        float(envelope.pow_target), target_peer=envelope.target_peer)

        self.broadcast(record)
        return record.hash


    def _validate(self, envelope):

        if (envelope.sym_key_id is None) == (envelope.pub_key is None):
            raise InvalidEnvelope('specify either a symmetric key id or a public key, not both')

        if not topics.is_topic(envelope.topic):
            raise InvalidEnvelope('invalid topic: ' + repr(envelope.topic))

        if envelope.ttl is None or envelope.ttl <= 0:
            raise InvalidEnvelope('ttl must be a positive number of seconds')

        if envelope.pow_target is None or envelope.pow_time is None:
            raise InvalidEnvelope('proof of work time and target are required')

        if envelope.pow_target < self.min_pow:
            error = 'proof of work target %g is below the node minimum %g'
            raise MessageRejected(error % (envelope.pow_target, self.min_pow))

        size = len(envelope.payload) + len(envelope.padding or b'')
        if size > self.max_message_size:
            raise MessageRejected('message exceeds %d bytes' % (self.max_message_size))


    def broadcast(self, record):
        """ Propagate a freshly posted *record*. The in-process node only
            delivers locally.
        """

        self.receive(record)


    def receive(self, record):
        """ Queue a *record* for local delivery. Duplicates (by hash) and
            expired records are dropped; the return value indicates whether
            the record was new.
        """

        if record.expired():
            return False

        with self._filters_lock:
            if record.hash in self._seen:
                return False
            self._seen[record.hash] = record.timestamp + record.ttl

        self._queue.put(record)
        return True


    def subscribe(self, criteria, callback):

        if not callable(callback):
            raise TypeError('callback must be callable')

        if (criteria.sym_key_id is None) == (criteria.private_key_id is None):
            raise InvalidEnvelope('specify either a symmetric key id or a private key id, not both')

        for topic in criteria.topics:
            if not topics.is_topic(topic):
                raise InvalidEnvelope('invalid topic: ' + repr(topic))

        sym_key = None
        private_key = None

        if criteria.sym_key_id is not None:
            sym_key = self.keys.sym_key(criteria.sym_key_id)
        else:
            private_key = self.keys.private_key(criteria.private_key_id)

        if criteria.sig is not None:
            keys.load_public(criteria.sig)

        handle = uuid.uuid4().hex
        filter = _Filter(criteria, callback, sym_key, private_key)

        with self._filters_lock:
            self._filters[handle] = filter

        logger.debug('filter %s installed for topics %s', handle, criteria.topics)
        return handle


    def unsubscribe(self, handle):
        with self._filters_lock:
            return self._filters.pop(handle, None) is not None


    def run(self):

        next_expire = time.time() + self.expire_interval

        while self.shutdown == False:
            try:
                record = self._queue.get(timeout=self.expire_interval)
            except queue.Empty:
                record = False

            if record is None:
                break

            if record:
                self._dispatch(record)

            # A steady stream of records must not hold off expiry.

            now = time.time()
            if now >= next_expire:
                self._expire(now)
                next_expire = now + self.expire_interval


    def _dispatch(self, record):

        self.messages += 1

        # Callbacks are invoked without holding the lock; a callback is
        # free to subscribe, unsubscribe or post.

        with self._filters_lock:
            filters = list(self._filters.items())

        for handle, filter in filters:
            event = filter.match(record)
            if event is None:
                continue

            try:
                filter.callback(event)
            except Exception:
                logger.exception('callback for filter %s failed', handle)


    def _expire(self, now=None):
        if now is None:
            now = time.time()

        with self._filters_lock:
            expired = [hash for hash, expiry in self._seen.items() if expiry < now]
            for hash in expired:
                del self._seen[hash]


    def close(self):
        self.shutdown = True
        self._queue.put(None)


# end of class Node


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
