"""Composition root.

`Simulation` owns the single SessionState and TransitionStateMachine for the
process and wires them into the orchestrator. It also reacts to environment
activation: arriving at a mission applies that mission's reference orbit and
hands the conversation to its specialist; arriving at the Hub hands it back
to Mission Control.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from capcom.config import Settings
from capcom.dispatcher import CommandDispatcher
from capcom.environments import get_profile
from capcom.errors import SchemaLoadError
from capcom.llm import LLM, HttpLLM
from capcom.models import CommandResult, Environment, TransitionPhase
from capcom.orchestrator import DisplayCallback, Orchestrator
from capcom.physics import PhysicalModel
from capcom.registry import CommandRegistry, default_catalog_path
from capcom.session import SessionState
from capcom.speech import AudioPlayer, ElevenLabsSpeech, SimulatedPlayer, Synthesizer
from capcom.transition import SceneLoader, SimulatedSceneLoader, TransitionStateMachine, TransitionView

logger = logging.getLogger(__name__)

CLOCK_INTERVAL = 0.1


def build_llm(settings: Settings) -> LLM | None:
    cfg = settings.llm
    if not cfg.enabled:
        logger.warning("No completion API key configured; narration will use fallback text")
        return None
    return HttpLLM(
        provider_url=cfg.provider_url,
        api_key=cfg.api_key,
        provider_format=cfg.provider_format,
        model=cfg.model,
        timeout=cfg.timeout,
    )


def build_speech(settings: Settings) -> Synthesizer | None:
    cfg = settings.speech
    if not cfg.enabled:
        return None
    if not cfg.api_key:
        logger.warning("No speech API key configured; narration will be shown as text")
        return None
    return ElevenLabsSpeech(
        api_key=cfg.api_key,
        base_url=cfg.base_url,
        voice=cfg.voice,
        sample_rate=cfg.sample_rate,
        timeout=cfg.timeout,
    )


class Simulation:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        llm: LLM | None = None,
        speech: Synthesizer | None = None,
        player: AudioPlayer | None = None,
        loader: SceneLoader | None = None,
        view: TransitionView | None = None,
        display: DisplayCallback | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.model = PhysicalModel()
        self.session = SessionState(self.settings.session.capacity)
        self.loader = loader or SimulatedSceneLoader(
            latency=self.settings.transition.simulated_load_latency
        )
        self.transitions = TransitionStateMachine(self.loader, view, self.settings.transition)
        self.transitions.add_listener(self._on_phase)

        self.load_error: str | None = None
        self.registry: CommandRegistry | None = None
        self.dispatcher: CommandDispatcher | None = None
        self.orchestrator: Orchestrator | None = None
        self._background: set[asyncio.Task] = set()
        self._clock_task: asyncio.Task | None = None

        source = self.settings.commands_path or default_catalog_path()
        try:
            self.registry = CommandRegistry.from_source(source)
        except SchemaLoadError as e:
            self.load_error = str(e)
            logger.error("Command catalog unavailable, turns are disabled: %s", e)
            return

        self.dispatcher = CommandDispatcher(self.registry, self.model)
        self.specialist_dispatcher = CommandDispatcher(CommandRegistry.specialist())
        self.orchestrator = Orchestrator(
            self.dispatcher,
            self.session,
            self.transitions,
            llm=llm if llm is not None else build_llm(self.settings),
            speech=speech if speech is not None else build_speech(self.settings),
            player=player or SimulatedPlayer(),
            templates=self.settings.prompts,
            display=display,
            voice=self.settings.speech.voice,
            classify_window=self.settings.session.classify_window,
            narrate_window=self.settings.session.narrate_window,
        )

    @property
    def ready(self) -> bool:
        return self.orchestrator is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the mission clock. Call from inside the event loop."""
        if self._clock_task is None and self.ready:
            self._clock_task = asyncio.get_running_loop().create_task(self._run_clock())

    async def stop(self) -> None:
        if self.orchestrator is not None:
            self.orchestrator.cancel()
        tasks = [t for t in (self._clock_task, *self._background) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._clock_task = None

    async def _run_clock(self) -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        while True:
            await asyncio.sleep(CLOCK_INTERVAL)
            now = loop.time()
            self.model.clock.advance(now - last)
            last = now

    def reset(self) -> None:
        """Operator reset: clear the conversation, the orbit and the clock."""
        logger.info("Operator reset")
        if self.orchestrator is not None:
            self.orchestrator.cancel()
            self.orchestrator.use_mission_control(self.dispatcher)
        self.session.clear()
        self.model.orbit.clear_orbit()
        self.model.clock.reset()

    # ------------------------------------------------------------------
    # Environment activation
    # ------------------------------------------------------------------

    def apply_preset(self, name: str) -> CommandResult | None:
        if self.registry is None or self.dispatcher is None:
            return None
        preset = self.registry.get_preset(name)
        if preset is None:
            logger.warning("Unknown orbit preset %r", name)
            return None
        result = self.dispatcher.execute(
            preset.command, preset.arguments, location=self.session.current_location
        )
        if not result.succeeded:
            logger.warning("Preset %s failed: %s", name, result.error_message)
        return result

    def activate_environment(self, environment: Environment) -> None:
        if self.orchestrator is None:
            return
        logger.info("Environment active: %s", environment.value)

        if environment is Environment.HUB:
            self.orchestrator.use_mission_control(self.dispatcher)
            return

        profile = get_profile(environment)
        if profile is None:
            return
        if profile.reference_preset:
            self.apply_preset(profile.reference_preset)
        self.orchestrator.use_specialist(profile, self.specialist_dispatcher)

        task = asyncio.get_running_loop().create_task(self.orchestrator.introduce_specialist())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_phase(self, phase: TransitionPhase, target: Environment | None) -> None:
        # FadingIn starts right after the loader activated the target
        if phase is TransitionPhase.FADING_IN and target is not None:
            self.activate_environment(target)
