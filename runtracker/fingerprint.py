from __future__ import annotations

from hashlib import sha256


def generate_uuid(data: bytes) -> str:
    """Fingerprint raw file content as a version 4 style UUID string.

    The SHA-256 digest is truncated to 16 bytes after the version nibble (byte 6) and the
    variant bits (byte 10) are forced, so identical bytes always give the same UUID.
    """
    digest = bytearray(sha256(data).digest())
    digest[6] = (digest[6] & 0x0F) | 0x40
    digest[10] = (digest[10] & 0x3F) | 0x80

    text = digest[:16].hex()
    return f"{text[:8]}-{text[8:12]}-{text[12:16]}-{text[16:20]}-{text[20:]}"
