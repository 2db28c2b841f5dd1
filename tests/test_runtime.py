"""Simulation wiring: environment activation, reset, and service construction."""

import asyncio
import json

import pytest

from capcom.config import LLMSettings, Settings, SpeechSettings
from capcom.environments import CAPCOM_PERSONA
from capcom.llm import HttpLLM
from capcom.models import Environment
from capcom.runtime import Simulation, build_llm, build_speech
from capcom.speech import ElevenLabsSpeech


async def _until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


class TestActivation:
    async def test_mission_applies_reference_orbit(self, simulation) -> None:
        simulation.activate_environment(Environment.ISS)

        orbit = simulation.model.orbit.orbit
        assert orbit is not None
        assert orbit.periapsis_km == pytest.approx(420)
        assert orbit.inclination_deg == pytest.approx(51.6)

    async def test_mission_switches_to_specialist(self, simulation, speech) -> None:
        simulation.activate_environment(Environment.GPS)

        assert simulation.orchestrator.profile.mission is Environment.GPS
        assert simulation.orchestrator.persona != CAPCOM_PERSONA
        # No scripted introduction, so the fallback greeting is spoken
        await _until(lambda: speech.texts)
        assert "GPS Operations Manager" in speech.texts[0]

    async def test_mission_without_preset_keeps_orbit(self, simulation) -> None:
        simulation.activate_environment(Environment.VOYAGER)

        assert simulation.model.orbit.orbit is None
        assert simulation.orchestrator.profile.mission is Environment.VOYAGER

    async def test_hub_returns_to_mission_control(self, simulation) -> None:
        simulation.activate_environment(Environment.HUBBLE)
        simulation.activate_environment(Environment.HUB)

        assert simulation.orchestrator.profile is None
        assert simulation.orchestrator.persona == CAPCOM_PERSONA

    async def test_unknown_preset(self, simulation) -> None:
        assert simulation.apply_preset("Mir") is None


class TestRoutedTurn:
    async def test_route_then_specialist(self, simulation, llm, speech) -> None:
        llm.script("classify", json.dumps({
            "intent": "execute",
            "commandId": "route_to_mission",
            "arguments": {"mission": "Hubble", "context_for_specialist": "Asked about telescopes"},
        }))
        llm.script("narrate", "Routing you to Hubble.")
        llm.script("introduce", "Welcome to Hubble.")

        outcome = await simulation.orchestrator.submit("Show me Hubble")
        await simulation.transitions.wait_idle()
        await _until(lambda: "Welcome to Hubble." in speech.texts)

        assert outcome.transition_started
        assert simulation.session.current_location == "Hubble"
        assert simulation.loader.active is Environment.HUBBLE
        assert simulation.model.orbit.orbit.periapsis_km == pytest.approx(540)
        _, intro_prompt, _ = llm.calls[-1]
        assert "Asked about telescopes" in intro_prompt


class TestLifecycle:
    async def test_reset(self, simulation) -> None:
        simulation.activate_environment(Environment.ISS)
        simulation.session.add_exchange("hi", "hello")
        simulation.session.set_routing_context("ISS", "because")
        simulation.model.clock.advance(100)

        simulation.reset()

        assert simulation.session.exchange_count == 0
        assert simulation.session.current_location == "Hub"
        assert simulation.model.orbit.orbit is None
        assert simulation.model.clock.elapsed_s == 0
        assert simulation.orchestrator.profile is None

    async def test_clock_runs(self, simulation) -> None:
        simulation.start()
        await _until(lambda: simulation.model.clock.elapsed_s > 0)
        await simulation.stop()

    async def test_bad_catalog(self, tmp_path) -> None:
        sim = Simulation(Settings(commands_path=tmp_path / "missing.json"))

        assert not sim.ready
        assert sim.orchestrator is None
        assert "Cannot read command catalog" in sim.load_error
        sim.start()
        await sim.stop()


class TestBuilders:
    def test_llm_needs_key(self) -> None:
        assert build_llm(Settings(llm=LLMSettings(api_key=""))) is None

    def test_llm_with_key(self) -> None:
        assert isinstance(build_llm(Settings(llm=LLMSettings(api_key="sk-test"))), HttpLLM)

    def test_koboldcpp_without_key(self) -> None:
        settings = Settings(llm=LLMSettings(provider_url="http://localhost:5001", provider_format="koboldcpp"))
        assert isinstance(build_llm(settings), HttpLLM)

    def test_speech_needs_key(self) -> None:
        assert build_speech(Settings(speech=SpeechSettings(api_key=""))) is None

    def test_speech_disabled(self) -> None:
        assert build_speech(Settings(speech=SpeechSettings(enabled=False, api_key="k"))) is None

    def test_speech_with_key(self) -> None:
        assert isinstance(build_speech(Settings(speech=SpeechSettings(api_key="k"))), ElevenLabsSpeech)
