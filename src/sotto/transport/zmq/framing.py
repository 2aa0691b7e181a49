"""ZMQ multipart framing for sealed records.

Publish (PUB/SUB)
    topic, version, record_json

The topic leads so that SUB-side prefix filtering remains possible; the
record body is hex encoded inside the JSON document.
"""

from __future__ import annotations

from typing import Sequence, Tuple

from ... import json
from ..local import Record


VERSION = b"1"


class FramingError(ValueError):
    """A received multipart message could not be decoded."""


def to_frames(record: Record) -> Tuple[bytes, ...]:
    """Encode a sealed record for a PUB socket."""

    document = {
        "body": record.body.hex(),
        "ttl": record.ttl,
        "pow": record.pow,
        "timestamp": record.timestamp,
        "target_peer": record.target_peer,
    }
    return (record.topic.encode(), VERSION, json.dumps(document))


def from_frames(parts: Sequence[bytes]) -> Record:
    """Decode SUB multipart parts into a record.

    The hash is recomputed locally rather than trusted from the sender.
    """

    if len(parts) != 3:
        raise FramingError(f"expected 3 frames, got {len(parts)}")

    topic, version, document = parts
    if version != VERSION:
        raise FramingError(f"record is version {version!r}, recipient expects {VERSION!r}")

    try:
        topic = topic.decode()
        document = json.loads(document)
        body = bytes.fromhex(document["body"])
        ttl = int(document["ttl"])
        pow = float(document["pow"])
        timestamp = float(document["timestamp"])
    except (KeyError, TypeError, ValueError, json.DecodeError) as exc:
        raise FramingError(f"malformed record: {exc}") from exc

    return Record(topic, body, ttl, pow, timestamp=timestamp,
                  target_peer=document.get("target_peer"))
