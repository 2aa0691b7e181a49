"""Addressing and delivery options.

Every send and subscribe call computes its effective parameters from three
layers, in increasing priority:

    built-in defaults  ->  session defaults  ->  per-call overrides

A field left as None in a higher layer is "not specified" and never clears
the value from a lower layer.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, Union


@dataclass
class Options:
    """Optional addressing/delivery fields shared by post and subscribe."""

    sig: Optional[str] = None
    sym_key_id: Optional[str] = None
    pub_key: Optional[str] = None
    private_key_id: Optional[str] = None
    topic: Any = None
    ttl: Optional[int] = None
    padding: Optional[bytes] = None
    pow_time: Optional[int] = None
    pow_target: Optional[float] = None
    target_peer: Optional[str] = None
    min_pow: Optional[float] = None
    allow_p2p: Optional[bool] = None
    use_sym_key: Optional[bool] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "Options":
        values = {}
        for key, value in mapping.items():
            name = ALIASES.get(key, key)
            if name not in _FIELD_NAMES:
                raise TypeError(f"unknown option: {key!r}")
            values[name] = value
        return cls(**values)

    @classmethod
    def coerce(cls, value: Union["Options", Mapping[str, Any], None]) -> "Options":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls.from_mapping(value)

    def specified(self) -> dict:
        """Return the fields that carry a value, as a dictionary."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def copy(self, **changes) -> "Options":
        return replace(self, **changes)


_FIELD_NAMES = frozenset(f.name for f in fields(Options))

# Option names as spelled by the JSON-RPC shh API.
ALIASES = {
    "symKeyID": "sym_key_id",
    "pubKey": "pub_key",
    "privateKeyID": "private_key_id",
    "powTime": "pow_time",
    "powTarget": "pow_target",
    "targetPeer": "target_peer",
    "minPow": "min_pow",
    "allowP2P": "allow_p2p",
    "useSymKey": "use_sym_key",
}

BUILTIN_DEFAULTS = Options(ttl=60)


def merge(*layers: Union[Options, Mapping[str, Any], None]) -> Options:
    """Merge option layers; later layers win, None never overrides."""

    merged = {}
    for layer in layers:
        merged.update(Options.coerce(layer).specified())
    return Options(**merged)


def default_use_symmetric(options: Options, inbound: bool = False) -> bool:
    """Default addressing mode when the caller did not pass ``use_sym_key``.

    Outbound messages fall back to symmetric addressing when there is no
    recipient public key to encrypt to. Inbound filters fall back to
    symmetric decryption when there is no private key to decrypt with.
    """

    if inbound:
        return options.private_key_id is None
    return options.pub_key is None
