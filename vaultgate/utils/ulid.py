"""ULID generation utility for VaultGate.

Provides a single `generate_ulid()` function that returns a 26-character ULID
(Universally Unique Lexicographically Sortable Identifier) used as the
immutable ``id`` of every issued API key record.

ULID specification (https://github.com/ulid/spec):
  - 26 characters, Crockford Base32 encoded (0-9A-HJKMNP-TV-Z)
  - 48-bit millisecond timestamp + 80-bit random component
  - URL-safe: no special characters, no padding

Key ids are public (they appear in listings and in revoke requests) and carry
no secret material: the secret is minted independently by the codec.

Uses the `python-ulid` library (see pyproject.toml): do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: A 26-character ULID string, charset ``[0-9A-HJKMNP-TV-Z]``.

    Example::

        key_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
        assert len(key_id) == 26
    """
    return str(ULID())
