"""Salted, cost-parameterised password hashing (bcrypt)."""

import asyncio
import logging
from typing import Optional

import bcrypt

from config import get_settings

logger = logging.getLogger(__name__)


class PasswordHasher:
    """
    Hash and verify passwords with bcrypt.

    The cost factor is written into every hash (``$2b$<rounds>$...``), so it
    can be raised later without invalidating existing hashes.
    """

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds if rounds is not None else get_settings().BCRYPT_ROUNDS

    def hash_sync(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify_sync(self, password: str, password_hash: str) -> bool:
        """
        Return True when ``password`` matches ``password_hash``.

        A mismatch is False, not an error. A malformed hash raises ValueError.
        """
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    async def hash(self, password: str) -> str:
        # bcrypt is CPU bound; keep it off the event loop
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, password, password_hash)

    def needs_rehash(self, password_hash: str) -> bool:
        rounds = rounds_from_hash(password_hash)
        return rounds is not None and rounds < self.rounds


def rounds_from_hash(password_hash: str) -> Optional[int]:
    """Return the cost factor encoded in a bcrypt hash, or None if unknown.

    Bcrypt hashes look like: $2b$12$<salt+hash> where 12 is the rounds.
    """
    parts = password_hash.split("$")
    # ['', '2b', '12', '...'] - cost is parts[2]
    if len(parts) >= 4 and parts[1] and parts[2].isdigit():
        return int(parts[2])
    return None
