import asyncio

import pytest
from parrychess.clock import VirtualClock
from parrychess.reactions import ReactionSource


class ScriptedReactions(ReactionSource):
    """Reacts at fixed offsets (ms from attack start), one entry per attack.

    ``None`` means no reaction. Scheduled reactions are not withdrawn on
    close, so leftover timers exercise the engine's stale-signal guard.
    """

    def __init__(self, clock, offsets_ms):
        self._clock = clock
        self._offsets = list(offsets_ms)
        self.signals = []
        self.started = []
        self.closes = 0

    def open_attack(self, attack, started_at, signal):
        index = len(self.signals)
        self.signals.append(signal)
        self.started.append(started_at)
        offset = self._offsets[index] if index < len(self._offsets) else None
        if offset is not None:
            when = started_at + offset / 1000
            self._clock.call_later(when - self._clock.now(), signal, when)

    def close_attack(self):
        self.closes += 1


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def scripted(clock):
    def make(*offsets_ms):
        return ScriptedReactions(clock, offsets_ms)
    return make


async def settle(n: int = 5):
    for _ in range(n):
        await asyncio.sleep(0)


@pytest.fixture
def settle_loop():
    return settle
