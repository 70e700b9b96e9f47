"""Sqids configuration for gallery slugs."""

from __future__ import annotations

import os

from sqids import Sqids

# Default is base62; production should set SQIDS_ALPHABET to a shuffled alphabet
# so slugs are not trivially sequential.
SQIDS_ALPHABET = os.getenv("SQIDS_ALPHABET", "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789")

SLUG_LENGTH = 10

sqids = Sqids(alphabet=SQIDS_ALPHABET, min_length=SLUG_LENGTH)


def encode_gallery_id(gallery_id: int) -> str:
    """
    Encode a gallery ID (integer) to its public URL-safe slug.

    Args:
        gallery_id: The integer gallery ID

    Returns:
        The encoded slug (at least SLUG_LENGTH characters)
    """
    return sqids.encode([gallery_id])

