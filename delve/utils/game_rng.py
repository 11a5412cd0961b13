"""Deterministic random number handle threaded through generation code.

Every consumer receives a :class:`GameRNG` explicitly; there is no module
level generator.  The handle wraps ``numpy.random.Generator`` so a seed
fully determines the sequence, and :func:`derive_seed` produces stable
sub-seeds for per-depth generation and retry attempts.
"""

from __future__ import annotations

import json
import random
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar("T")

SEED_MAX = 2**32 - 1


def derive_seed(*keys: int) -> int:
    """Return a 32-bit seed that is a pure function of ``keys``."""
    seq = np.random.SeedSequence([int(k) & 0xFFFFFFFFFFFFFFFF for k in keys])
    return int(seq.generate_state(1, dtype=np.uint32)[0])


class GameRNG:
    def __init__(self, seed: Optional[int] = None) -> None:
        self.initial_seed = seed if seed is not None else random.randint(0, SEED_MAX)
        self.rng = np.random.default_rng(self.initial_seed)

    # ------------------------------------------------------------------
    # basic random helpers
    # ------------------------------------------------------------------
    def get_int(self, a: int, b: int) -> int:
        """Inclusive integer in ``[a, b]``."""
        if a > b:
            raise ValueError("a <= b")
        return int(self.rng.integers(a, b + 1))

    def get_float(self, a: float = 0.0, b: float = 1.0) -> float:
        if a > b:
            raise ValueError("a <= b")
        return a + (b - a) * float(self.rng.random())

    def coin_flip(self, heads_probability: float = 0.5) -> bool:
        if not 0.0 <= heads_probability <= 1.0:
            raise ValueError("probability out of range")
        return self.get_float() < heads_probability

    def random_array(self, shape: Tuple[int, ...]) -> np.ndarray:
        """Uniform floats in ``[0, 1)`` with the given shape."""
        return self.rng.random(shape)

    def sub_seed(self) -> int:
        """Draw a fresh seed for a child generator."""
        return self.get_int(0, SEED_MAX)

    # ------------------------------------------------------------------
    # sequence utilities
    # ------------------------------------------------------------------
    def choice(self, seq: Sequence[T]) -> T:
        """Return a random element from *seq*."""
        if not seq:
            raise ValueError("cannot choose from an empty sequence")
        return seq[self.get_int(0, len(seq) - 1)]

    def sample(self, items: Sequence[T], k: int) -> List[T]:
        """``k`` distinct elements of ``items`` in draw order."""
        if k < 0:
            raise ValueError("k >= 0")
        if k > len(items):
            raise ValueError("k <= len(items)")
        if k == 0:
            return []
        picks = self.rng.choice(len(items), size=k, replace=False)
        return [items[int(i)] for i in picks]

    # ------------------------------------------------------------------
    # state management
    # ------------------------------------------------------------------
    def get_state(self) -> Dict[str, Any]:
        return {
            "random_state": self.rng.bit_generator.state,
            "initial_seed": self.initial_seed,
        }

    def set_state(self, state: Dict[str, Any]) -> None:
        if "random_state" in state:
            self.rng.bit_generator.state = state["random_state"]
        if "initial_seed" in state:
            self.initial_seed = state["initial_seed"]

    def save_state_to_file(self, filename: str) -> None:
        with open(filename, "w", encoding="utf-8") as f:
            json.dump(self.get_state(), f, indent=2)

    def load_state_from_file(self, filename: str) -> None:
        with open(filename, "r", encoding="utf-8") as f:
            state = json.load(f)
        self.set_state(state)

    def reset(self, seed: Optional[int] = None) -> None:
        self.initial_seed = seed if seed is not None else random.randint(0, SEED_MAX)
        self.rng = np.random.default_rng(self.initial_seed)


__all__ = ["GameRNG", "derive_seed", "SEED_MAX"]
