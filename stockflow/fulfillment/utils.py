"""
Reference number helpers for fulfillment aggregates.
"""

import secrets
import string
import time

_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(prefix: str) -> str:
    """
    Build a unique reference such as ``PKG-1718000000000-7KQ2ZD``.

    The millisecond timestamp keeps references sortable by creation order;
    the random suffix keeps two references created in the same millisecond apart.
    """
    suffix = ''.join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"
