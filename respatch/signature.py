"""Masked signature search over in-memory file contents.

Every start position is considered, so overlapping matches are counted: after
a match at ``i`` the scan resumes at ``i + 1``. A wildcard byte always matches,
which means an all-wildcard signature matches wherever it fits.
"""

import logging
from typing import Iterator, List, Optional, Tuple

from respatch.errors import SignatureNotFound
from respatch.models import Signature

logger = logging.getLogger(__name__)


def _anchor(signature: Signature) -> Optional[Tuple[int, bytes]]:
    """Return (offset, bytes) of the longest run of exact bytes, if any"""
    best: Optional[Tuple[int, bytes]] = None
    start = None
    for j, is_wildcard in enumerate(signature.wildcard + (True,)):
        if not is_wildcard:
            if start is None:
                start = j
            continue
        if start is not None:
            if best is None or j - start > len(best[1]):
                best = (start, signature.pattern[start:j])
            start = None
    return best


def iter_matches(buffer: bytes, signature: Signature) -> Iterator[int]:
    """Yield every position where signature matches buffer, earliest first.

    The longest exact run of the signature is located with ``bytes.find`` and
    the full pattern is only compared at those candidates.
    """
    last_start = len(buffer) - len(signature)
    if last_start < 0:
        return

    anchor = _anchor(signature)
    if anchor is None:
        # All wildcards
        yield from range(last_start + 1)
        return

    anchor_offset, anchor_bytes = anchor
    search_from = anchor_offset
    while True:
        hit = buffer.find(anchor_bytes, search_from)
        if hit < 0:
            return
        i = hit - anchor_offset
        if i > last_start:
            return
        if signature.matches_at(buffer, i):
            yield i
        search_from = hit + 1


def locate_signature(buffer: bytes, signature: Signature) -> List[int]:
    """Return all match positions of signature in buffer"""
    return list(iter_matches(buffer, signature))


def find_occurrence(
    buffer: bytes,
    signature: Signature,
    occurrence: int = 1,
    descriptor: Optional[str] = None,
    path: Optional[str] = None,
) -> int:
    """Find the position of the Nth match of signature in buffer.

    Args:
        buffer: Data to search
        signature: Validated signature
        occurrence: 1-based ordinal of the match to return
        descriptor: Descriptor name reported on failure (optional)
        path: File name reported on failure (optional)

    Returns:
        Offset of the requested match

    Raises:
        SignatureNotFound: If fewer than ``occurrence`` matches exist
    """
    if occurrence < 1:
        raise ValueError(f"Occurrence must be at least 1, got {occurrence}")

    found = 0
    for position in iter_matches(buffer, signature):
        found += 1
        if found == occurrence:
            logger.debug("Signature occurrence %d found at %#x", occurrence, position)
            return position

    raise SignatureNotFound(occurrence, found, descriptor=descriptor, path=path)
