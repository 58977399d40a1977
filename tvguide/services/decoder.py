"""
Feed body decoding

Turns a possibly gzip-compressed response body into plain bytes.
"""
import logging
import zlib

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
# 10-byte header plus 8-byte CRC/size trailer
GZIP_MIN_LENGTH = 18
CHUNK_SIZE = 64 * 1024
# 15 window bits, +32 lets zlib detect a gzip or zlib header
AUTO_HEADER_WBITS = 15 + 32


def looks_like_gzip(data: bytes) -> bool:
    """Check for a gzip magic number on a body long enough to hold a gzip member"""
    return len(data) >= GZIP_MIN_LENGTH and data[:2] == GZIP_MAGIC


def decompress(data: bytes, is_likely_gzip: bool) -> bytes:
    """
    Inflate a gzip body, or return it unchanged

    Servers sometimes advertise gzip but deliver an already decoded body,
    so any failure yields the original bytes instead of an error.

    Args:
        data: Raw response body
        is_likely_gzip: Hint from the URL extension or Content-Type

    Returns:
        Decompressed bytes, or `data` itself when not applicable or on failure
    """
    if not is_likely_gzip or not looks_like_gzip(data):
        return data

    decompressor = zlib.decompressobj(AUTO_HEADER_WBITS)
    output = bytearray()
    view = memoryview(data)

    try:
        for offset in range(0, len(view), CHUNK_SIZE):
            output += decompressor.decompress(view[offset:offset + CHUNK_SIZE])
            if decompressor.eof:
                break
        output += decompressor.flush()
    except zlib.error as exc:
        logger.warning("Gzip decompression failed (%s); using body as received", exc)
        return data

    if not decompressor.eof:
        logger.warning("Gzip stream ended before end-of-stream marker; using body as received")
        return data

    logger.debug("Decompressed %s bytes to %s bytes", len(data), len(output))
    return bytes(output)
