""" Envelope sealing. A payload is wrapped in a small binary frame, signed
    if the sender asked for it, and encrypted either with a shared symmetric
    key (AES-GCM) or to a recipient public key (ephemeral ECDH, HKDF, then
    AES-GCM). The topic is bound as associated data, so a sealed body cannot
    be replayed under another topic.

    Inner frame layout::

        flags (1) | payload length (4) | padding length (4)
        payload | padding | [public key (65) | DER signature]
"""

import hashlib
import os
import struct

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from . import keys


SIGNED = 0x01

_header = struct.Struct('>BII')
_nonce_length = 12
_public_length = 65
_hkdf_info = b'sotto envelope'


class Unsealed:
    """ The decrypted contents of a sealed envelope. *sig* is the hex public
        key of the sender, or None if the message was not signed.
    """

    __slots__ = ('payload', 'padding', 'sig')

    def __init__(self, payload, padding, sig):
        self.payload = payload
        self.padding = padding
        self.sig = sig


def message_hash(topic, sealed):
    digest = hashlib.sha256(topic.encode() + sealed).digest()
    return keys.tohex(digest)


def _aad(topic):
    return topic.lower().encode()


def frame(payload, padding=None, signer=None):
    """ Build the inner frame. *signer* is an EC private key, or None for an
        unsigned message.
    """

    if padding is None:
        padding = b''

    flags = SIGNED if signer is not None else 0
    body = _header.pack(flags, len(payload), len(padding)) + payload + padding

    if signer is None:
        return body

    signature = signer.sign(body, ec.ECDSA(hashes.SHA256()))
    public = keys.public_bytes(signer.public_key())
    return body + public + signature


def unframe(inner):
    """ Parse and verify an inner frame. Raises ValueError for a malformed
        frame and InvalidSignature for a bad signature.
    """

    if len(inner) < _header.size:
        raise ValueError('truncated frame')

    flags, payload_length, padding_length = _header.unpack_from(inner)
    start = _header.size
    end = start + payload_length + padding_length

    if end > len(inner):
        raise ValueError('truncated frame')

    payload = inner[start:start + payload_length]
    padding = inner[start + payload_length:end]

    if not flags & SIGNED:
        return Unsealed(payload, padding, None)

    public = inner[end:end + _public_length]
    signature = inner[end + _public_length:]
    if len(public) != _public_length or not signature:
        raise ValueError('truncated signature')

    public_key = keys.load_public(public)
    public_key.verify(signature, inner[:end], ec.ECDSA(hashes.SHA256()))

    return Unsealed(payload, padding, keys.tohex(public))


def seal_symmetric(key, topic, inner):
    nonce = os.urandom(_nonce_length)
    return nonce + AESGCM(key).encrypt(nonce, inner, _aad(topic))


def open_symmetric(key, topic, sealed):
    nonce = sealed[:_nonce_length]
    ciphertext = sealed[_nonce_length:]
    inner = AESGCM(key).decrypt(nonce, ciphertext, _aad(topic))
    return unframe(inner)


def _shared_key(private, public):
    shared = private.exchange(ec.ECDH(), public)
    kdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=_hkdf_info)
    return kdf.derive(shared)


def seal_asymmetric(public_key, topic, inner):
    ephemeral = ec.generate_private_key(keys.curve)
    key = _shared_key(ephemeral, public_key)
    nonce = os.urandom(_nonce_length)
    ciphertext = AESGCM(key).encrypt(nonce, inner, _aad(topic))
    return keys.public_bytes(ephemeral.public_key()) + nonce + ciphertext


def open_asymmetric(private_key, topic, sealed):
    if len(sealed) < _public_length + _nonce_length:
        raise InvalidTag()

    ephemeral = keys.load_public(sealed[:_public_length])
    nonce = sealed[_public_length:_public_length + _nonce_length]
    ciphertext = sealed[_public_length + _nonce_length:]

    key = _shared_key(private_key, ephemeral)
    inner = AESGCM(key).decrypt(nonce, ciphertext, _aad(topic))
    return unframe(inner)


def try_open(topic, sealed, sym_key=None, private_key=None):
    """ Attempt to open *sealed* with whichever key is provided. Returns an
        :class:`Unsealed` instance, or None if the key does not fit or the
        contents do not verify.
    """

    try:
        if sym_key is not None:
            return open_symmetric(sym_key, topic, sealed)
        if private_key is not None:
            return open_asymmetric(private_key, topic, sealed)
    except (InvalidTag, InvalidSignature, ValueError, keys.UnknownKey):
        return None

    return None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
