import pytest

import sotto

from peers import RecordingTransport


@pytest.fixture
def recording():
    return RecordingTransport()


@pytest.fixture
def session(recording):
    session = sotto.Session(recording)
    session.config({'topic': 'unittest'})
    return session


@pytest.fixture
def node():
    node = sotto.transport.local.Node()
    yield node
    node.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
