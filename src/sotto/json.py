''' Payload serialization for :mod:`sotto`. Application payloads travel
    through the transport as opaque bytes; this module binds :func:`dumps`,
    :func:`loads` and :class:`DecodeError` to the best JSON library present,
    so that :func:`dumps` always returns bytes and :func:`loads` accepts
    bytes or str.
'''

# msgspec is a declared dependency; orjson and the standard library are
# tried after it, in that order.

try:
    import msgspec
except ImportError:
    msgspec = None

if msgspec is not None:
    _encoder = msgspec.json.Encoder()
    _decoder = msgspec.json.Decoder()

    dumps = _encoder.encode
    loads = _decoder.decode
    DecodeError = msgspec.DecodeError

else:
    try:
        import orjson
    except ImportError:
        orjson = None

    if orjson is not None:
        dumps = orjson.dumps
        loads = orjson.loads
        DecodeError = orjson.JSONDecodeError

    else:
        import json as _json

        def dumps(value):
            return _json.dumps(value, separators=(',', ':')).encode()

        loads = _json.loads
        DecodeError = _json.JSONDecodeError


def decode(payload):
    """ Decode a transport payload. An empty payload decodes to None rather
        than raising, since the transport permits messages without a body.
    """

    if payload is None or payload == b'' or payload == '':
        return None

    return loads(payload)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
