"""Shared fixtures and recording test doubles.

The doubles append to a shared `events` list so tests can assert on the
order in which the pipeline touched its collaborators.
"""

import asyncio

import pytest

from capcom.config import Settings, TransitionSettings
from capcom.dispatcher import CommandDispatcher
from capcom.errors import CompletionServiceError, SynthesisServiceError
from capcom.orchestrator import Orchestrator
from capcom.physics import PhysicalModel
from capcom.registry import CommandRegistry, default_catalog_path
from capcom.runtime import Simulation
from capcom.session import SessionState
from capcom.speech import AudioClip
from capcom.transition import TransitionStateMachine


# ── Doubles ──────────────────────────────────────────────


class ScriptedLLM:
    """Returns canned replies per stage, in order, and records every call.

    A reply that is an Exception instance is raised instead of returned. A
    stage with no scripted reply left raises CompletionServiceError. Set
    `block` to an asyncio.Event to park every call until it is set.
    """

    def __init__(self, events, replies=None):
        self.events = events
        self.replies = {stage: list(r) for stage, r in (replies or {}).items()}
        self.calls = []  # (stage, prompt, instructions)
        self.block = None

    def script(self, stage, *replies):
        self.replies.setdefault(stage, []).extend(replies)

    async def __call__(self, stage, prompt, instructions=None):
        self.calls.append((stage, prompt, instructions))
        self.events.append(f"llm:{stage}")
        if self.block is not None:
            await self.block.wait()
        queue = self.replies.get(stage)
        if not queue:
            raise CompletionServiceError(f"no scripted reply for {stage}")
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def stages(self):
        return [c[0] for c in self.calls]


class FakeSpeech:
    """Synthesizes a fixed-length silent clip, or fails when `fail` is set."""

    def __init__(self, events, seconds=0.01, sample_rate=1000):
        self.events = events
        self.seconds = seconds
        self.sample_rate = sample_rate
        self.fail = False
        self.texts = []
        self.voices = []

    async def __call__(self, text, voice=None):
        self.texts.append(text)
        self.voices.append(voice)
        self.events.append("speech")
        if self.fail:
            raise SynthesisServiceError("speech backend down")
        return AudioClip(data=b"\x00" * int(self.seconds * self.sample_rate * 2), sample_rate=self.sample_rate)


class RecordingPlayer:
    def __init__(self, events):
        self.events = events
        self.played = []
        self.stops = 0

    async def play(self, clip):
        self.played.append(clip)
        self.events.append("play:start")
        await asyncio.sleep(clip.duration)
        self.events.append("play:end")

    def stop(self):
        self.stops += 1


class RecordingLoader:
    """Scene loader that completes after `polls_needed` completion checks."""

    def __init__(self, events, polls_needed=0):
        self.events = events
        self.polls_needed = polls_needed
        self.fail = False
        self.never_completes = False
        self.activated = []
        self._polls = 0

    def begin_load(self, target):
        self.events.append(f"load:{target.value}")
        self._polls = 0
        return target

    def is_complete(self, handle):
        if self.fail:
            raise RuntimeError("asset bundle missing")
        if self.never_completes:
            return False
        self._polls += 1
        return self._polls > self.polls_needed

    def activate(self, handle):
        self.events.append(f"activate:{handle.value}")
        self.activated.append(handle)


class RecordingView:
    def __init__(self):
        self.cover = []
        self.marker = []

    def set_cover(self, opacity):
        self.cover.append(opacity)

    def set_marker(self, target, opacity):
        self.marker.append((target, opacity))


# ── Fixtures ─────────────────────────────────────────────


@pytest.fixture
def events():
    return []


@pytest.fixture
def fast_transition():
    """Millisecond timings so a full transition takes well under a second."""
    return TransitionSettings(
        fade_duration=0.02,
        marker_fade_duration=0.01,
        minimum_dwell=0.03,
        load_timeout=0.5,
        tick=0.005,
        poll_interval=0.005,
        simulated_load_latency=0.01,
    )


@pytest.fixture
def registry():
    return CommandRegistry.from_source(default_catalog_path())


@pytest.fixture
def model():
    return PhysicalModel()


@pytest.fixture
def dispatcher(registry, model):
    return CommandDispatcher(registry, model)


@pytest.fixture
def session():
    return SessionState(capacity=10)


@pytest.fixture
def llm(events):
    return ScriptedLLM(events)


@pytest.fixture
def speech(events):
    return FakeSpeech(events)


@pytest.fixture
def player(events):
    return RecordingPlayer(events)


@pytest.fixture
def loader(events):
    return RecordingLoader(events)


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture
def transitions(loader, view, fast_transition, events):
    machine = TransitionStateMachine(loader, view, fast_transition)
    machine.add_listener(lambda phase, target: events.append(f"phase:{phase.value}"))
    return machine


@pytest.fixture
def displayed():
    return []


@pytest.fixture
def orchestrator(dispatcher, session, transitions, llm, speech, player, displayed):
    return Orchestrator(
        dispatcher,
        session,
        transitions,
        llm=llm,
        speech=speech,
        player=player,
        display=displayed.append,
    )


@pytest.fixture
def settings(fast_transition):
    return Settings(transition=fast_transition)


@pytest.fixture
async def simulation(settings, llm, speech, player, displayed):
    sim = Simulation(settings, llm=llm, speech=speech, player=player, display=displayed.append)
    yield sim
    await sim.stop()
