""" A class representation of a delivered message, with the operations that
    let a handler answer its sender without working out the addressing by
    hand.
"""

from . import json
from .options import Options, merge


_unsigned = "the message you received isn't signed, you must specify "
POST_BACK_ERROR = _unsigned + 'the recipient public key or a symmetric key (use_sym_key)'
SUBSCRIBE_BACK_ERROR = _unsigned + 'a sender filter (sig) or a symmetric key (use_sym_key)'


class Unaddressable(ValueError):
    """ A reply cannot be addressed: the message was not signed, and neither
        the session defaults nor the caller supplied an alternative.
    """


class Reply:
    """ The outcome of resolving reply addressing. Exactly one of *options*
        and *error* is set; callers can branch on :attr:`ok` instead of
        handling an exception.
    """

    __slots__ = ('options', 'error')

    def __init__(self, options=None, error=None):
        self.options = options
        self.error = error

    def __repr__(self):
        if self.error is None:
            return 'Reply(%r)' % (self.options,)
        return 'Reply(error=%r)' % (self.error,)

    @property
    def ok(self):
        return self.error is None

    def unwrap(self):
        """ Return the resolved options, or raise the addressing error.
        """

        if self.error is not None:
            raise self.error
        return self.options


# end of class Reply



class IncomingMessage:
    """ The :class:`IncomingMessage` is an immutable view of one message
        delivered on a subscription. The payload is decoded once, here,
        when the message is constructed.

        :ivar session: The :class:`sotto.session.Session` the message arrived on.
        :ivar subscription_id: The subscription that matched the message.
        :ivar raw: The :class:`sotto.transport.base.Event` as delivered.
        :ivar payload: The decoded application payload.
        :ivar author_sig: The sender public key, or None if unsigned.
    """

    __slots__ = ('session', 'subscription_id', 'raw', 'payload', 'author_sig')

    def __init__(self, session, event, subscription_id):

        set = object.__setattr__
        set(self, 'session', session)
        set(self, 'subscription_id', subscription_id)
        set(self, 'raw', event)
        set(self, 'payload', json.decode(event.payload))
        set(self, 'author_sig', event.sig)


    def __setattr__(self, name, value):
        raise AttributeError('IncomingMessage instances are immutable')


    def __delattr__(self, name):
        raise AttributeError('IncomingMessage instances are immutable')


    def __repr__(self):
        return '<IncomingMessage %d from %s: %r>' % (self.subscription_id,
                                                     self.author_sig, self.payload)


    @property
    def topic(self):
        return self.raw.topic


    @property
    def hash(self):
        return self.raw.hash


    def reply_options(self, overrides=None, subscribe=False):
        """ Work out the options for a reply to this message, without raising.
            For a post, the sender becomes the recipient (pub_key) unless the
            caller names its own recipient or asks for symmetric addressing;
            for a subscription (*subscribe* set to True) the sender becomes
            the sender filter (sig) unless the caller supplies one. Explicit
            *overrides* always win.

            Returns a :class:`Reply`.
        """

        overrides = Options.coerce(overrides)
        remote = self.session.defaults.pub_key

        if subscribe:
            addressable = (overrides.use_sym_key or self.author_sig
                           or remote or overrides.sig)
            if not addressable:
                return Reply(error=Unaddressable(SUBSCRIBE_BACK_ERROR))

            return Reply(merge(Options(sig=self.author_sig), overrides))

        addressable = (overrides.use_sym_key or self.author_sig
                       or remote or overrides.pub_key)
        if not addressable:
            return Reply(error=Unaddressable(POST_BACK_ERROR))

        if overrides.pub_key is None and not overrides.use_sym_key:
            addressee = Options(pub_key=self.author_sig)
        else:
            addressee = Options()

        return Reply(merge(addressee, overrides))


    def post_back(self, payload, overrides=None):
        """ Post *payload* to the sender of this message; see
            :func:`reply_options` for how the recipient is chosen. Raises
            :class:`Unaddressable` if there is no way to address the reply.
            Returns the message hash.
        """

        options = self.reply_options(overrides).unwrap()
        return self.session.post(payload, options)


    def subscribe_back(self, overrides, handler):
        """ Subscribe to messages from the sender of this message. Raises
            :class:`Unaddressable` under the same conditions as
            :func:`post_back`. Returns the subscription id.
        """

        options = self.reply_options(overrides, subscribe=True).unwrap()
        return self.session.subscribe(options, handler)


# end of class IncomingMessage


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
