# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Reset code hashing using bcrypt.

Codes are short (six digits), so the stored hash mixes in a server-side
salt from the configuration on top of bcrypt's own per-hash salt. A leaked
``password_resets`` document is then useless without the configuration.

Example:
    >>> hasher = CodeHasher(pepper="s3cret")
    >>> hashed = hasher.hash("123456")
    >>> hasher.verify("123456", hashed)
    True
"""

import logging

import bcrypt

logger = logging.getLogger(__name__)


class CodeHasher:
    """Salted bcrypt hashing of one-time codes.

    Attributes:
        _pepper: Server-side salt appended to every code.
        _rounds: Number of bcrypt rounds for hashing.
    """

    def __init__(self, pepper: str, rounds: int = 12) -> None:
        """Initialize the code hasher.

        Args:
            pepper: Server-side salt (``PORTAL_CODE_SALT``).
            rounds: Number of bcrypt rounds. Tests use the minimum (4).
        """
        self._pepper = pepper
        self._rounds = rounds

    def _material(self, code: str) -> bytes:
        return f"{code}:{self._pepper}".encode("utf-8")

    def hash(self, code: str) -> str:
        """Hash a code.

        Raises:
            ValueError: If code is empty.
        """
        if not code:
            raise ValueError("Code cannot be empty")
        return bcrypt.hashpw(self._material(code), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, code: str, code_hash: str) -> bool:
        """Check a code against a stored hash."""
        if not code or not code_hash:
            return False
        try:
            return bcrypt.checkpw(self._material(code), code_hash.encode("utf-8"))
        except ValueError as e:
            logger.warning("Code verification failed: %s", str(e))
            return False
