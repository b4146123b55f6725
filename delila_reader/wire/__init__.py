"""Byte cursor and MessagePack primitives."""

from .cursor import ByteCursor
from .msgpack import MsgPackDecoder

__all__ = [
    'ByteCursor',
    'MsgPackDecoder',
]
