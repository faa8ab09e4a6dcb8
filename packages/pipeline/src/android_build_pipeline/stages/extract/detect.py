from __future__ import annotations

import bz2
import gzip
import lzma
import tarfile
from enum import StrEnum
from pathlib import Path

_SNIFF_BYTES = 512
_TAR_MAGIC_OFFSET = 257


class MediaType(StrEnum):
    ZIP = "application/zip"
    TAR = "application/x-tar"
    GZIP = "application/gzip"
    BZIP2 = "application/x-bzip2"
    XZ = "application/x-xz"
    SEVEN_ZIP = "application/x-7z-compressed"
    RAR = "application/vnd.rar"
    PDF = "application/pdf"
    PNG = "image/png"
    TEXT = "text/plain"
    EMPTY = "application/x-empty"
    OCTET_STREAM = "application/octet-stream"


# Magic numbers, checked in order.
_SIGNATURES: tuple[tuple[bytes, MediaType], ...] = (
    (b"PK\x03\x04", MediaType.ZIP),
    (b"PK\x05\x06", MediaType.ZIP),  # empty archive
    (b"PK\x07\x08", MediaType.ZIP),  # spanned archive
    (b"\x1f\x8b", MediaType.GZIP),
    (b"BZh", MediaType.BZIP2),
    (b"\xfd7zXZ\x00", MediaType.XZ),
    (b"7z\xbc\xaf\x27\x1c", MediaType.SEVEN_ZIP),
    (b"Rar!\x1a\x07", MediaType.RAR),
    (b"%PDF-", MediaType.PDF),
    (b"\x89PNG\r\n\x1a\n", MediaType.PNG),
)

ARCHIVE_TYPES = frozenset(
    {
        MediaType.ZIP,
        MediaType.TAR,
        MediaType.GZIP,
        MediaType.BZIP2,
        MediaType.XZ,
        MediaType.SEVEN_ZIP,
        MediaType.RAR,
    }
)

_COMPRESSORS = {
    MediaType.GZIP: gzip.open,
    MediaType.BZIP2: bz2.open,
    MediaType.XZ: lzma.open,
}


def _looks_like_text(head: bytes) -> bool:
    if b"\x00" in head:
        return False
    try:
        head.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def detect_media_type(path: Path) -> MediaType:
    """
    Media type from the file's leading bytes. The file name is never consulted.
    """
    with Path(path).open("rb") as f:
        head = f.read(_SNIFF_BYTES)

    if not head:
        return MediaType.EMPTY

    for magic, media_type in _SIGNATURES:
        if head.startswith(magic):
            return media_type

    if head[_TAR_MAGIC_OFFSET : _TAR_MAGIC_OFFSET + 5] == b"ustar":
        return MediaType.TAR

    if _looks_like_text(head):
        return MediaType.TEXT

    return MediaType.OCTET_STREAM


def is_compressed_tar(path: Path, media_type: MediaType) -> bool:
    """True when a gzip/bzip2/xz stream wraps a tarball."""
    opener = _COMPRESSORS.get(media_type)
    if opener is None:
        return False
    try:
        with opener(path, "rb") as f:
            block = f.read(_TAR_MAGIC_OFFSET + 8)
    except (OSError, EOFError, lzma.LZMAError):
        return False
    return block[_TAR_MAGIC_OFFSET : _TAR_MAGIC_OFFSET + 5] == b"ustar"


def is_extractable(path: Path, media_type: MediaType) -> bool:
    if media_type is MediaType.ZIP:
        return True
    if media_type is MediaType.TAR:
        return tarfile.is_tarfile(path)
    return is_compressed_tar(path, media_type)
