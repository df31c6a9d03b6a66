"""Readers for Source 2 demo files and TV broadcasts, with bit-level decoding helpers."""

__version__ = "0.1.0"

__all__ = [
    "bitreader",
    "fieldvalue",
    "fieldpath",
    "demostream",
    "snappy",
    "demofile",
    "broadcaststream",
    "broadcastfile",
    "httpclient",
    "broadcasthttp",
]