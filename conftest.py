from collections import defaultdict

import pytest

from red_truth.models import Mystery
from red_truth.session import SessionStore, start_playing


async def _replay(elements):
    for element in elements:
        if isinstance(element, BaseException):
            raise element
        yield element


class StubOracle:
    """Oracle double: each call replays the next canned envelope for its method.

    queue("converse", Progress("..."), Terminal(reply)) adds one envelope;
    an exception among the elements is raised at that point of iteration.
    A call with nothing queued yields an empty envelope.
    """

    def __init__(self):
        self.envelopes: dict[str, list[list]] = defaultdict(list)
        self.calls: list[tuple[str, tuple]] = []  # (method, args)

    def queue(self, method, *elements):
        self.envelopes[method].append(list(elements))

    def _envelope(self, method, args):
        self.calls.append((method, args))
        pending = self.envelopes[method]
        return _replay(pending.pop(0) if pending else [])

    def called(self, method):
        return [args for name, args in self.calls if name == method]

    def generate_mystery(self, theme):
        return self._envelope("generate_mystery", (theme,))

    def converse(self, hidden_truth, history, message, red_truth_pool, used_facts, magic_list):
        return self._envelope(
            "converse",
            (hidden_truth, tuple(history), message, tuple(red_truth_pool),
             tuple(used_facts), tuple(magic_list)),
        )

    def judge_hypothesis(self, hidden_truth, used_facts, hypothesis, magic_list, history):
        return self._envelope(
            "judge_hypothesis",
            (hidden_truth, tuple(used_facts), hypothesis, tuple(magic_list), tuple(history)),
        )

    def closing_scenario(self, surface_situation, hidden_truth, used_facts, magic_list):
        return self._envelope(
            "closing_scenario",
            (surface_situation, hidden_truth, tuple(used_facts), tuple(magic_list)),
        )

    def tutorial_beat(self, context):
        return self._envelope("tutorial_beat", (context,))


@pytest.fixture
def oracle():
    return StubOracle()


@pytest.fixture
def mystery():
    return Mystery(
        title="The Locked Study",
        surface_situation="The master lies dead in a study bolted from the inside.",
        hidden_truth="The butler slid the bolt home with a magnet through the door.",
        red_truths=("The door was bolted.", "Nobody left the study.", "The door was bolted."),
        magic_list=("A", "B"),
    )


@pytest.fixture
def store(mystery):
    """A store already in the playing stage."""
    return SessionStore(start_playing(mystery))
