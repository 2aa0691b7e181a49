""" Key material held by a transport node. Key pairs are secp256k1, used
    both for ECDH (asymmetric encryption) and ECDSA (signatures); symmetric
    keys are 32 random or password-derived bytes. Callers only ever see the
    opaque identifiers handed out here, plus hex renderings of the keys.
"""

import os
import threading
import uuid

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .base import UnknownKey


curve = ec.SECP256K1()
sym_key_length = 32

# Password derivation has no salt on purpose: two processes that know the
# same password must end up with the same key.

password_iterations = 65356
password_salt = b''


def public_bytes(public_key):
    """ Return the uncompressed SEC1 encoding of *public_key*, 65 bytes.
    """

    encoding = serialization.Encoding.X962
    format = serialization.PublicFormat.UncompressedPoint
    return public_key.public_bytes(encoding, format)


def load_public(value):
    """ Load a public key from its hex (with or without a 0x prefix) or raw
        byte encoding.
    """

    if isinstance(value, str):
        value = unhex(value)

    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(curve, value)
    except ValueError as e:
        raise UnknownKey('invalid public key: ' + str(e)) from e


def tohex(value):
    return '0x' + value.hex()


def unhex(value):
    if value[:2] in ('0x', '0X'):
        value = value[2:]

    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise UnknownKey('not a hex string: ' + repr(value)) from e


def derive(password):
    """ Derive symmetric key material from *password*. The result is
        deterministic.
    """

    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=sym_key_length,
                     salt=password_salt, iterations=password_iterations)
    return kdf.derive(password.encode('utf-8'))


class KeyStore:
    """ Thread-safe registry of key pairs and symmetric keys, keyed by
        opaque identifiers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pairs = dict()
        self._symmetric = dict()


    def _new_id(self):
        return uuid.uuid4().hex


    def new_key_pair(self):
        private = ec.generate_private_key(curve)
        key_id = self._new_id()

        with self._lock:
            self._pairs[key_id] = private

        return key_id


    def new_sym_key(self):
        return self.add_sym_key(os.urandom(sym_key_length))


    def sym_key_from_password(self, password):
        if not password:
            raise ValueError('a non-empty password is required')

        return self.add_sym_key(derive(password))


    def add_sym_key(self, key):
        if len(key) != sym_key_length:
            raise ValueError('symmetric keys must be %d bytes' % (sym_key_length))

        key_id = self._new_id()

        with self._lock:
            self._symmetric[key_id] = bytes(key)

        return key_id


    def private_key(self, key_id):
        with self._lock:
            try:
                return self._pairs[key_id]
            except KeyError:
                raise UnknownKey('no key pair with id ' + repr(key_id)) from None


    def sym_key(self, key_id):
        with self._lock:
            try:
                return self._symmetric[key_id]
            except KeyError:
                raise UnknownKey('no symmetric key with id ' + repr(key_id)) from None


    def get_public_key(self, key_id):
        private = self.private_key(key_id)
        return tohex(public_bytes(private.public_key()))


    def get_private_key(self, key_id):
        private = self.private_key(key_id)
        value = private.private_numbers().private_value
        return tohex(value.to_bytes(32, 'big'))


    def get_sym_key(self, key_id):
        return tohex(self.sym_key(key_id))


# end of class KeyStore


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
