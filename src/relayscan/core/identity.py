"""Relay identity helpers.

Relay fingerprints are hex strings whose case is not significant:
- normalize_identity: canonical form for display and keys
- same_identity: case-insensitive comparison
"""


def normalize_identity(identity: str) -> str:
    """Return the canonical form of a relay fingerprint.

    Strips surrounding whitespace and an optional leading ``$`` (the
    published file prefixes identities with one), then upper-cases.

    Args:
        identity: Raw fingerprint string.

    Returns:
        Upper-case fingerprint without prefix.

    Examples:
        >>> normalize_identity("$abcd01")
        'ABCD01'
    """
    identity = identity.strip()
    if identity.startswith("$"):
        identity = identity[1:]
    return identity.upper()


def same_identity(left: str, right: str) -> bool:
    """Compare two fingerprints ignoring case."""
    return left.casefold() == right.casefold()
