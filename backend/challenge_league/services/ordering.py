from __future__ import annotations
import hashlib
import random
from typing import Sequence, TypeVar

T = TypeVar("T")


def _seed(*parts: object) -> int:
    digest = hashlib.sha256("-".join(str(p) for p in parts).encode()).digest()
    return int.from_bytes(digest[:8], "big")


def user_specific_order(items: Sequence[T], user_id: object, context_id: object = "") -> list[T]:
    """Shuffle that is stable for one (user, context) pair and differs between users."""
    out = list(items)
    if len(out) <= 1:
        return out
    random.Random(_seed(user_id, context_id)).shuffle(out)
    return out


def voting_order(responses: Sequence[T], user_id: object, prompt_id: object) -> list[T]:
    return user_specific_order(responses, user_id, f"voting-{prompt_id}")
