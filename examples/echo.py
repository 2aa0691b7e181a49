""" Two sessions on separate ZeroMQ nodes. The client broadcasts a question
    under a shared password-derived key; the server answers the sender
    directly, encrypted to the public key the question was signed with.
"""

import logging
import threading
import time

import sotto
from sotto.transport import zmq


def session(node):
    session = sotto.Session(node)
    session.config({'topic': 'echo'})
    session.use_new_sym_key('echo example')
    session.use_new_key_pair()
    return session


def main():

    logging.basicConfig(level=logging.INFO)

    server_node = zmq.Node()
    client_node = zmq.Node()
    server_node.connect('127.0.0.1', client_node.port)
    client_node.connect('127.0.0.1', server_node.port)

    server = session(server_node)
    client = session(client_node)

    def echo(message):
        message.post_back({'echo': message.payload})

    server.subscribe({'useSymKey': True}, echo)

    answered = threading.Event()

    def answer(message):
        logging.info('answer from %s: %r', message.author_sig[:18], message.payload)
        answered.set()

    client.subscribe({}, answer)

    # Let the PUB/SUB connections settle before asking.
    time.sleep(0.5)
    client.post('anyone there?', {'useSymKey': True})

    if not answered.wait(5):
        logging.error('no answer')

    client_node.close()
    server_node.close()


if __name__ == '__main__':
    main()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
