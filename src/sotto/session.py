""" The :class:`Session` is the primary entry point: it owns the default
    addressing and delivery options, the registry of active subscriptions,
    and the key material helpers, and it routes every post and subscription
    through the transport.
"""

import functools
import itertools
import logging
import math
import threading

from . import json
from . import topic
from .message import IncomingMessage
from .options import BUILTIN_DEFAULTS, Options, default_use_symmetric, merge
from .transport.base import Criteria, Envelope

logger = logging.getLogger(__name__)


# Subscription ids are unique across every session in the process, and are
# never reused.

_id_lock = threading.Lock()
_id_ticker = itertools.count(0)


def _id_next():
    """ Return the next subscription identification number.
    """

    with _id_lock:
        return next(_id_ticker)



class Session:
    """ A :class:`Session` wraps a transport (see
        :class:`sotto.transport.base.Transport`) with session-wide defaults.
        Every :func:`post` and :func:`subscribe` merges three layers of
        options: the built-in defaults, the session :attr:`defaults`, and the
        per-call overrides, the latter taking precedence.

        Call :func:`config` before sending anything; it fetches the transport
        capabilities needed for the proof of work defaults.

        :ivar defaults: The session-wide :class:`sotto.options.Options`.
        :ivar info: Transport capabilities, populated by :func:`config`.
        :ivar subscriptions: Handlers for active subscriptions, keyed by id.
    """

    to_topic = staticmethod(topic.to_topic)
    is_topic = staticmethod(topic.is_topic)

    def __init__(self, transport, defaults=None):

        self.transport = transport
        self.defaults = Options.coerce(defaults).copy()
        self.info = None
        self.subscriptions = dict()

        self._handles = dict()
        self._lock = threading.RLock()


    def config(self, overrides=None):
        """ Fetch the transport capabilities and establish the session
            defaults. The proof of work target defaults to twice the minimum
            the transport accepts; the *overrides* win over both that and
            the built-in defaults. If the resulting topic is not already a
            topic string it is converted with :func:`sotto.topic.to_topic`.

            Returns the new :attr:`defaults`.
        """

        info = self.transport.info()
        self.info = info

        derived = Options(pow_target=2 * info.min_pow,
                          pow_time=math.ceil(2 * info.min_pow))

        # Existing defaults (key ids, most likely) survive a reconfiguration,
        # but the built-in and derived values are reasserted.

        defaults = merge(self.defaults, BUILTIN_DEFAULTS, derived, overrides)

        if not topic.is_topic(defaults.topic):
            defaults.topic = topic.to_topic(defaults.topic)

        self.defaults = defaults
        return defaults


    def post(self, payload, overrides=None):
        """ Post a message. The *payload* is anything that serializes as JSON.
            Symmetric addressing is used if *use_sym_key* is set in the
            *overrides*; if it is not specified at all, symmetric addressing
            is used only when there is no recipient public key. Returns the
            message hash assigned by the transport.
        """

        overrides = Options.coerce(overrides)
        merged = merge(BUILTIN_DEFAULTS, self.defaults, overrides)

        use_sym_key = overrides.use_sym_key
        if use_sym_key is None:
            use_sym_key = default_use_symmetric(merged)

        if use_sym_key:
            sym_key_id = merged.sym_key_id
            pub_key = overrides.pub_key
        else:
            sym_key_id = overrides.sym_key_id
            pub_key = merged.pub_key

        envelope = Envelope(
            topic=merged.topic,
            payload=json.dumps(payload),
            ttl=merged.ttl,
            pow_time=merged.pow_time,
            pow_target=merged.pow_target,
            sym_key_id=sym_key_id,
            pub_key=pub_key,
            sig=merged.sig,
            padding=merged.padding,
            target_peer=merged.target_peer,
        )

        hash = self.transport.post(envelope)
        logger.debug('posted %s on %s (%s)', hash, envelope.topic,
                     'symmetric' if use_sym_key else 'asymmetric')
        return hash


    def subscribe(self, overrides, handler):
        """ Subscribe to messages on the session topic; *handler* will be
            invoked with an :class:`sotto.message.IncomingMessage` for every
            message received. Messages are decrypted with the symmetric key
            if *use_sym_key* is set, otherwise with the private key; left
            unspecified, the symmetric key is used only when there is no
            private key. The sender filter (*sig*) defaults to the remote
            public key of the session, if any.

            Returns the subscription id, for use with :func:`unsubscribe`.
        """

        if not callable(handler):
            raise TypeError('handler must be callable')

        overrides = Options.coerce(overrides)
        merged = merge(BUILTIN_DEFAULTS, self.defaults, overrides)

        use_sym_key = overrides.use_sym_key
        if use_sym_key is None:
            use_sym_key = default_use_symmetric(merged, inbound=True)

        if use_sym_key:
            sym_key_id = merged.sym_key_id
            private_key_id = overrides.private_key_id
        else:
            sym_key_id = overrides.sym_key_id
            private_key_id = merged.private_key_id

        sender = overrides.sig
        if sender is None:
            sender = self.defaults.pub_key

        if merged.topic is None:
            topics = []
        else:
            topics = [merged.topic]

        criteria = Criteria(
            topics=topics,
            sym_key_id=sym_key_id,
            private_key_id=private_key_id,
            sig=sender,
            min_pow=merged.min_pow,
            allow_p2p=merged.allow_p2p,
        )

        subscription_id = _id_next()

        # The handler is registered first, so that nothing the transport
        # delivers can arrive ahead of the registry entry.

        with self._lock:
            self.subscriptions[subscription_id] = handler

        callback = functools.partial(self._deliver, subscription_id)

        try:
            handle = self.transport.subscribe(criteria, callback)
        except Exception:
            with self._lock:
                self.subscriptions.pop(subscription_id, None)
            raise

        with self._lock:
            orphaned = subscription_id not in self.subscriptions
            if not orphaned:
                self._handles[subscription_id] = handle

        if orphaned:
            # Unsubscribed from a handler before the transport call returned.
            self.transport.unsubscribe(handle)

        logger.debug('subscription %d on %s', subscription_id, topics)
        return subscription_id


    def _deliver(self, subscription_id, event):
        """ Transport callback. The handler is looked up at delivery time,
            and invoked while holding the registry lock, so that once
            :func:`unsubscribe` returns the handler will not be called again.
        """

        with self._lock:
            handler = self.subscriptions.get(subscription_id)

            if handler is None:
                return

            try:
                message = IncomingMessage(self, event, subscription_id)
            except json.DecodeError:
                logger.warning('subscription %d: undecodable payload in %s',
                               subscription_id, event.hash)
                return

            handler(message)


    def unsubscribe(self, subscription_id):
        """ Stop delivering messages for *subscription_id*. Returns True if
            the subscription was active, False otherwise.
        """

        with self._lock:
            handler = self.subscriptions.pop(subscription_id, None)
            handle = self._handles.pop(subscription_id, None)

        if handle is not None:
            self.transport.unsubscribe(handle)

        if handler is None:
            return False

        logger.debug('unsubscribed %d', subscription_id)
        return True


    # Key material.

    def use_new_key_pair(self):
        """ Generate a new key pair and use it both to decrypt incoming
            messages (*private_key_id*) and to sign outgoing ones (*sig*).
            Returns the key pair id.
        """

        key_id = self.transport.new_key_pair()
        self.defaults.private_key_id = key_id
        self.defaults.sig = key_id
        return key_id


    def use_new_sym_key(self, password=None):
        """ Generate a new symmetric key and make it the session default.
            If a *password* is provided the key is derived from it, and any
            other session using the same password arrives at the same key.
            Returns the key id.
        """

        if password:
            key_id = self.transport.sym_key_from_password(password)
        else:
            key_id = self.transport.new_sym_key()

        self.defaults.sym_key_id = key_id
        return key_id


    def get_public_key(self, key_id=None):
        """ Return the public key for a key pair id, by default the signing
            key of this session.
        """

        if key_id is None:
            key_id = self.defaults.sig
        return self.transport.get_public_key(key_id)


    def get_private_key(self, key_id=None):
        if key_id is None:
            key_id = self.defaults.private_key_id
        return self.transport.get_private_key(key_id)


    def get_sym_key(self, key_id=None):
        if key_id is None:
            key_id = self.defaults.sym_key_id
        return self.transport.get_sym_key(key_id)


    def set_remote_public_key(self, pub_key):
        """ Set the default recipient of outgoing messages, which is also
            the default sender filter for subscriptions.
        """

        self.defaults.pub_key = pub_key


# end of class Session


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
