""" Conversations between sessions sharing an in-process node. These follow
    the same scenarios a networked deployment would go through: keys are
    real, every message is sealed and opened.
"""

import threading
import time

import pytest

import sotto
from sotto.transport.base import Criteria, Envelope, InvalidEnvelope, MessageRejected, UnknownKey

from peers import Inbox, configured


def test_post_symmetric(node):

    first = configured(node, 'topicLS1', password='topicLS1')
    second = configured(node, 'topicLS1', password='topicLS1')

    inbox = Inbox()
    second.subscribe({'useSymKey': True}, inbox)
    first.post({'value': 44}, {'useSymKey': True})

    assert inbox.wait()
    message = inbox.messages[0]
    assert message.payload == {'value': 44}
    assert message.author_sig is None


def test_post_back_signed(node):

    payload1 = 'payload1'
    payload2 = 'payload2'

    first = configured(node, 'topicPB1', password='topicPB1', key_pair=True)
    second = configured(node, 'topicPB1', password='topicPB1', key_pair=True)

    def reply(message):
        assert message.payload == payload1
        message.post_back(payload2)

    second.subscribe({'useSymKey': True}, reply)

    inbox = Inbox()
    first.subscribe({}, inbox)
    first.post(payload1, {'useSymKey': True})

    assert inbox.wait()
    assert inbox.payloads == [payload2]
    assert inbox.messages[0].author_sig == second.get_public_key()


def test_post_back_symmetric(node):

    payload1 = 'payload1'
    payload2 = 'payload2'

    session = configured(node, 'topicPB3', password='topicPB3')
    done = threading.Event()

    def handler(message):
        if message.payload == payload2:
            done.set()
        else:
            message.post_back(payload2, {'useSymKey': True})

    session.subscribe({'useSymKey': True}, handler)
    session.post(payload1, {'useSymKey': True})

    assert done.wait(5)


def test_post_back_unsigned(node):

    first = configured(node, 'topicPB2', password='topicPB2')
    second = configured(node, 'topicPB2', password='topicPB2', key_pair=True)

    errors = list()
    done = threading.Event()

    def handler(message):
        try:
            message.post_back('payload2')
        except sotto.Unaddressable as e:
            errors.append(e)
        done.set()

    second.subscribe({'useSymKey': True}, handler)
    first.post('payload1', {'useSymKey': True})

    assert done.wait(5)
    assert len(errors) == 1


def test_subscribe_back(node):

    payload1 = 'payload1'
    payload2 = 'payload2'

    first = configured(node, 'topicSB1', password='topicSB1', key_pair=True)
    second = configured(node, 'topicSB1', password='topicSB1', key_pair=True)

    first.set_remote_public_key(second.get_public_key())

    inbox = Inbox()

    def handler(message):
        assert message.payload == payload1
        message.subscribe_back({}, inbox)
        first.post(payload2)

    second.subscribe({'useSymKey': True}, handler)
    first.post(payload1, {'useSymKey': True})

    assert inbox.wait()
    assert inbox.payloads == [payload2]
    assert inbox.messages[0].author_sig == first.get_public_key()


def test_subscribe_back_unsigned(node):

    first = configured(node, 'topicSB2', password='topicSB2')
    second = configured(node, 'topicSB2', password='topicSB2', key_pair=True)

    errors = list()
    done = threading.Event()

    def handler(message):
        try:
            message.subscribe_back({}, print)
        except sotto.Unaddressable as e:
            errors.append(e)
        done.set()

    second.subscribe({'useSymKey': True}, handler)
    first.post('payload1', {'useSymKey': True})

    assert done.wait(5)
    assert len(errors) == 1


def test_sender_filter(node):

    first = configured(node, 'topicSF1', password='topicSF1', key_pair=True)
    second = configured(node, 'topicSF1', password='topicSF1', key_pair=True)
    listener = configured(node, 'topicSF1', password='topicSF1')

    inbox = Inbox()
    listener.subscribe({'useSymKey': True, 'sig': second.get_public_key()}, inbox)

    first.post('from first', {'useSymKey': True})
    second.post('from second', {'useSymKey': True})

    assert inbox.wait()
    node.close()
    node.thread.join(5)

    assert inbox.payloads == ['from second']


def test_unsubscribe(node):

    session = configured(node, 'topicUS1', password='topicUS1')

    inbox = Inbox()
    subscription_id = session.subscribe({'useSymKey': True}, inbox)

    assert session.unsubscribe(subscription_id) == True
    assert session.unsubscribe(subscription_id) == False

    session.post('payload', {'useSymKey': True})
    node.close()
    node.thread.join(5)

    assert inbox.messages == []


def test_password_sessions_agree(node):

    other = sotto.transport.local.Node()

    try:
        first = configured(node, 'topic', password='shared')
        second = configured(other, 'topic', password='shared')
        assert first.get_sym_key() == second.get_sym_key()
    finally:
        other.close()


def test_topic_isolation(node):

    first = configured(node, 'alpha', password='shared')
    second = configured(node, 'bravo', password='shared')

    alpha = Inbox()
    bravo = Inbox()
    first.subscribe({'useSymKey': True}, alpha)
    second.subscribe({'useSymKey': True}, bravo)

    first.post('to alpha', {'useSymKey': True})

    assert alpha.wait()
    node.close()
    node.thread.join(5)

    assert bravo.messages == []


def test_handler_exception(node, caplog):

    session = configured(node, 'topicHE1', password='topicHE1')

    def broken(message):
        raise RuntimeError('handler failure')

    inbox = Inbox()
    session.subscribe({'useSymKey': True}, broken)
    session.subscribe({'useSymKey': True}, inbox)
    session.post('payload', {'useSymKey': True})

    assert inbox.wait()
    assert 'failed' in caplog.text


def test_envelope_validation(node):

    session = configured(node, 'topicEV1', password='topicEV1', key_pair=True)
    info = node.info()
    assert info.min_pow == 0.2

    with pytest.raises(MessageRejected):
        session.post('payload', {'useSymKey': True, 'powTarget': 0.01})

    with pytest.raises(InvalidEnvelope):
        session.post('payload', {'useSymKey': True, 'pubKey': session.get_public_key()})

    with pytest.raises(InvalidEnvelope):
        session.post('payload', {'useSymKey': True, 'topic': 'not a topic'})

    with pytest.raises(UnknownKey):
        session.post('payload', {'useSymKey': True, 'symKeyID': 'missing'})

    with pytest.raises(UnknownKey):
        session.subscribe({'privateKeyID': 'missing'}, print)

    unconfigured = sotto.Session(node)
    unconfigured.use_new_sym_key()

    with pytest.raises(InvalidEnvelope):
        unconfigured.post('payload', {'topic': '0x12345678'})


def test_min_pow_filter(node):

    session = configured(node, 'topicMP1', password='topicMP1')

    strict = Inbox()
    relaxed = Inbox()
    session.subscribe({'useSymKey': True, 'minPow': 1.0}, strict)
    session.subscribe({'useSymKey': True}, relaxed)

    session.post('payload', {'useSymKey': True})

    assert relaxed.wait()
    node.close()
    node.thread.join(5)

    assert strict.messages == []


def test_peer_to_peer(node):

    session = configured(node, 'topicPP1', password='topicPP1')

    direct = Inbox()
    ordinary = Inbox()
    session.subscribe({'useSymKey': True, 'allowP2P': True}, direct)
    session.subscribe({'useSymKey': True}, ordinary)

    session.post('payload', {'useSymKey': True, 'targetPeer': 'enode://peer'})

    assert direct.wait()
    node.close()
    node.thread.join(5)

    assert ordinary.messages == []


def test_direct_transport_use(node):
    """ The transport contract is usable without a session.
    """

    key_id = node.new_key_pair()
    events = list()
    done = threading.Event()

    def callback(event):
        events.append(event)
        done.set()

    criteria = Criteria(topics=['0x12345678'], private_key_id=key_id)
    handle = node.subscribe(criteria, callback)

    envelope = Envelope(topic='0x12345678', payload=b'raw', ttl=10, pow_time=1,
                        pow_target=0.4, pub_key=node.get_public_key(key_id),
                        padding=b'\x00' * 16)
    hash = node.post(envelope)

    assert done.wait(5)
    assert events[0].payload == b'raw'
    assert events[0].hash == hash
    assert events[0].padding == b'\x00' * 16
    assert events[0].recipient_public_key == node.get_public_key(key_id)

    assert node.unsubscribe(handle) == True
    assert node.unsubscribe(handle) == False



def test_seen_hashes_expire_under_steady_traffic(node):
    """ Expired hashes are dropped even when records keep arriving faster
        than the dispatch thread would otherwise go idle.
    """

    key_id = node.new_sym_key()
    node.subscribe(Criteria(topics=['0x0000abcd'], sym_key_id=key_id), lambda event: None)

    posted = 0
    for count in range(18):
        envelope = Envelope(topic='0x0000abcd', payload=b'%d' % (count),
                            ttl=1, pow_time=1, pow_target=0.4, sym_key_id=key_id)
        node.post(envelope)
        posted += 1
        time.sleep(0.2)

    # Allow one full expiry interval of slack.
    cutoff = time.time() - node.expire_interval - 0.5
    stale = [hash for hash, expiry in list(node._seen.items()) if expiry < cutoff]

    assert stale == []
    assert node.info().memory < posted


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
