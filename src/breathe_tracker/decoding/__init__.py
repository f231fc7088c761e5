"""
Decoding Module
===============

Binary decoding of beacon advertisements.

Components:
    - decode_frame / encode_frame: Pure payload codec
    - FrameDecoder: Codec with rejection metrics, used by the engine
"""

from breathe_tracker.decoding.frame_decoder import (
    FRAME_LENGTH,
    FRAME_SENTINEL,
    FrameDecoder,
    decode_frame,
    encode_frame,
)

__all__ = [
    "FRAME_LENGTH",
    "FRAME_SENTINEL",
    "FrameDecoder",
    "decode_frame",
    "encode_frame",
]
