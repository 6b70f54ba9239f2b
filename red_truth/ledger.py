"""Bookkeeping of absolute facts already declared."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict


class TruthLedger(BaseModel):
    """Append-only record of declared facts.

    Duplicates are kept: the oracle may restate a fact verbatim.
    """

    model_config = ConfigDict(frozen=True)

    used_facts: tuple[str, ...] = ()

    def record(self, fact: str) -> TruthLedger:
        return TruthLedger(used_facts=(*self.used_facts, fact))

    def available(self, red_truths: Iterable[str]) -> list[str]:
        """Pool entries not yet spent, in pool order.

        Multiset difference: each used fact consumes one equal pool entry.
        """
        spent = Counter(self.used_facts)
        remaining: list[str] = []
        for fact in red_truths:
            if spent[fact] > 0:
                spent[fact] -= 1
            else:
                remaining.append(fact)
        return remaining
