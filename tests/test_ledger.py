"""Tests for red_truth.ledger.TruthLedger."""

from red_truth.ledger import TruthLedger


def test_empty_ledger():
    assert TruthLedger().used_facts == ()


def test_record_returns_new_ledger():
    ledger = TruthLedger()
    after = ledger.record("The door was bolted.")
    assert ledger.used_facts == ()
    assert after.used_facts == ("The door was bolted.",)


def test_record_never_reorders_or_drops():
    ledger = TruthLedger()
    facts = ["c", "a", "b", "a"]
    seen = []
    for fact in facts:
        ledger = ledger.record(fact)
        seen.append(fact)
        assert list(ledger.used_facts) == seen


def test_available_preserves_pool_order():
    ledger = TruthLedger(used_facts=("b",))
    assert ledger.available(["a", "b", "c"]) == ["a", "c"]


def test_available_is_multiset_difference():
    pool = ["x", "y", "x", "x"]
    ledger = TruthLedger(used_facts=("x", "x"))
    assert ledger.available(pool) == ["y", "x"]


def test_fresh_facts_do_not_touch_pool():
    """A fact outside the pool leaves the pool whole."""
    ledger = TruthLedger(used_facts=("something new",))
    assert ledger.available(["a", "b"]) == ["a", "b"]


def test_overspent_fact():
    ledger = TruthLedger(used_facts=("a", "a", "a"))
    assert ledger.available(["a", "b"]) == ["b"]
