""" Topic handling. A topic is the four byte identifier the transport uses
    to decide which subscribers see a message; it is always represented as
    the string '0x' followed by exactly eight hexadecimal digits.
"""

import re

from . import json


_topic_pattern = re.compile(r'0x[0-9a-fA-F]{8}')
_hex_pattern = re.compile(r'0[xX][0-9a-fA-F]*')
_integer_pattern = re.compile(r'[0-9]+')


def is_topic(value):
    """ Return True if *value* is a string of the form 0x12345678, with any
        mix of upper and lower case hex digits. Anything else, including
        integers and None, is not a topic.
    """

    if isinstance(value, str):
        return _topic_pattern.fullmatch(value) is not None
    return False


def to_topic(value):
    """ Convert an arbitrary *value* to a topic: render it as a hex string,
        pad it with zero bytes to at least four bytes, and truncate to the
        first four bytes.

        Strings are treated as text unless they are already a hex string
        (0x...) or a plain decimal integer; numbers are rendered as their
        hexadecimal value; bytes are rendered directly.
    """

    rendered = _to_hex(value)
    rendered = rendered + '00000000'
    return '0x' + rendered[2:10]


def _to_hex(value):

    if value is None:
        return '0x'

    # bool is a subclass of int, check it first.
    if isinstance(value, bool):
        return '0x01' if value else '0x00'

    if isinstance(value, int):
        if value >= 0:
            return '%#x' % (value)
        return _text_to_hex(str(value))

    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()

    if isinstance(value, str):
        if _hex_pattern.fullmatch(value):
            return '0x' + value[2:]
        if _integer_pattern.fullmatch(value):
            return '%#x' % (int(value))
        return _text_to_hex(value)

    if isinstance(value, (dict, list, tuple)):
        return '0x' + json.dumps(value).hex()

    return _text_to_hex(str(value))


def _text_to_hex(text):
    return '0x' + text.encode('utf-8').hex()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
