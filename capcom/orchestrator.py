"""Orchestrator: runs one conversational turn end-to-end.

Turn flow:
  1. Classify   ask the LLM for a CommandCall (unparseable reply -> no action).
  2. Dispatch   validate and execute; a failure is narrated locally.
  3. Narrate    ask the LLM to phrase the result; templated fallback on error.
  4. Voice      synthesize speech; if that fails, show the narration as text.
  5. Playback   wait until the clip has finished playing.
  6. Transition only now, if the command asked for one.
  7. Record     append the Exchange and, for an accepted transition, the
                pending route. Location and visited missions change only
                once the target environment is activated.

Only one turn runs at a time. A second submission while busy raises
TurnInProgressError. `cancel()` aborts the turn at whatever await it is
parked on; a canceled turn records nothing and never starts a transition.
Steps 6 and 7 contain no awaits, so a turn either completes both or neither.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable, Coroutine
from typing import Any

from capcom.dispatcher import CommandDispatcher
from capcom.environments import CAPCOM_PERSONA, MissionProfile
from capcom.errors import CompletionServiceError, SynthesisServiceError, TurnInProgressError
from capcom.llm import LLM
from capcom.models import CommandCall, CommandResult, Environment, TransitionPhase, TurnOutcome
from capcom.prompts import PromptError, PromptTemplates, fact_list, render_prompt
from capcom.session import SessionState
from capcom.speech import AudioClip, AudioPlayer, Synthesizer, VoiceSettings
from capcom.transition import TransitionStateMachine

logger = logging.getLogger(__name__)

DisplayCallback = Callable[[str], None]

RESPONDING_TEXT = "Mission Control is responding..."
CANCELED_TEXT = "Canceled."
NON_COMMAND_FALLBACK = (
    "I'm ready to help you design orbits. "
    "Please specify the orbit parameters you'd like to create."
)


class Orchestrator:
    def __init__(
        self,
        dispatcher: CommandDispatcher,
        session: SessionState,
        transitions: TransitionStateMachine,
        *,
        llm: LLM | None = None,
        speech: Synthesizer | None = None,
        player: AudioPlayer | None = None,
        templates: PromptTemplates | None = None,
        display: DisplayCallback | None = None,
        voice: VoiceSettings | None = None,
        classify_window: int = 3,
        narrate_window: int = 5,
    ) -> None:
        self._dispatcher = dispatcher
        self._session = session
        self._transitions = transitions
        self._llm = llm
        self._speech = speech
        self._player = player
        self._templates = templates or PromptTemplates()
        self._display = display or _log_display
        self._default_voice = voice
        self._voice = voice
        self._profile: MissionProfile | None = None
        self._classify_window = classify_window
        self._narrate_window = narrate_window

        self._task: asyncio.Task | None = None
        self._cancel_requested = False
        transitions.add_listener(self._on_transition_phase)

    @property
    def busy(self) -> bool:
        return self._task is not None

    @property
    def profile(self) -> MissionProfile | None:
        return self._profile

    @property
    def persona(self) -> str:
        if self._profile is None:
            return CAPCOM_PERSONA
        return f"{self._profile.specialist_name} ({self._profile.name})"

    # ------------------------------------------------------------------
    # Persona switching
    # ------------------------------------------------------------------

    def use_specialist(self, profile: MissionProfile, dispatcher: CommandDispatcher) -> None:
        self._profile = profile
        self._dispatcher = dispatcher
        self._voice = profile.voice or self._default_voice
        logger.info("Speaking as %s", self.persona)

    def use_mission_control(self, dispatcher: CommandDispatcher) -> None:
        self._profile = None
        self._dispatcher = dispatcher
        self._voice = self._default_voice
        logger.info("Speaking as %s", self.persona)

    def _on_transition_phase(self, phase: TransitionPhase, target: Environment | None) -> None:
        # FadingIn follows activation; Idle with a route still pending means the load failed
        if phase is TransitionPhase.FADING_IN and target is not None:
            self._session.arrive(target.value)
        elif phase is TransitionPhase.IDLE:
            self._session.abandon_routing()

    # ------------------------------------------------------------------
    # Turn control
    # ------------------------------------------------------------------

    async def submit(self, text: str) -> TurnOutcome:
        """Run one turn for `text`.

        Raises TurnInProgressError if a turn is already running.
        """
        outcome = await self._run_exclusive(self._turn(text), reject=True)
        if outcome is None:
            return TurnOutcome(status="canceled", user_text=text)
        return outcome

    async def introduce_specialist(self) -> str | None:
        """Speak the current specialist's greeting. Skipped if a turn is running."""
        if self._profile is None:
            return None
        if self.busy:
            logger.info("Skipping %s introduction: a turn is in progress", self._profile.specialist_name)
            return None
        return await self._run_exclusive(self._introduce(self._profile), reject=False)

    def cancel(self) -> bool:
        """Abort the running turn. Returns False if nothing was running."""
        if self._task is None:
            return False
        logger.info("Canceling current turn")
        self._cancel_requested = True
        self._task.cancel()
        if self._player is not None:
            self._player.stop()
        return True

    async def _run_exclusive(self, coro: Coroutine[Any, Any, Any], *, reject: bool) -> Any:
        if self._task is not None:
            coro.close()
            if reject:
                raise TurnInProgressError("A turn is already in progress")
            return None

        if self._player is not None:
            self._player.stop()
        task = asyncio.get_running_loop().create_task(coro)
        self._task = task
        self._cancel_requested = False
        try:
            return await task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            self._display(CANCELED_TEXT)
            return None
        finally:
            self._task = None
            self._cancel_requested = False

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _turn(self, text: str) -> TurnOutcome:
        self._display(RESPONDING_TEXT)

        # 1. Classify
        call = await self._classify(text)
        logger.debug("classified %r -> %s %s", text, call.intent, call.command_id)

        # 2. Dispatch
        result: CommandResult | None = None
        narration: str | None = None
        if call.intent == "execute":
            result = self._dispatcher.execute(
                call.command_id, call.arguments, location=self._session.current_location
            )
            if not result.succeeded:
                narration = f"I couldn't execute that command: {result.error_message}"
            logger.debug("dispatched %s succeeded=%s", result.command_id, result.succeeded)

        # 3. Narrate
        if narration is None:
            narration = await self._narrate(text, result)
        logger.debug("narration len=%d", len(narration))

        # 4-5. Voice and playback
        spoken = await self._speak(narration)

        # 6. Transition
        transition_started = False
        if result is not None and result.succeeded and result.requires_transition:
            target = result.transition_target
            transition_started = self._transitions.begin_transition(target)
            if not transition_started:
                logger.warning("Transition to %s was not started", target.value)

        # 7. Record
        self._session.add_exchange(
            user_text=text,
            assistant_text=narration,
            command_executed=result.command_id if result is not None and result.succeeded else None,
        )
        if transition_started:
            self._session.begin_routing(result.transition_target.value, result.routing_rationale)

        return TurnOutcome(
            status="completed",
            user_text=text,
            narration=narration,
            spoken=spoken,
            call=call,
            result=result,
            transition_started=transition_started,
        )

    async def _classify(self, text: str) -> CommandCall:
        if self._llm is None:
            logger.warning("No completion service configured; treating message as no action")
            return CommandCall.no_action()
        try:
            instructions = render_prompt(self._templates.classify_instructions, {
                "persona": self.persona,
                "location": self._session.current_location,
                "commands": self._dispatcher.registry.describe_for_prompt(),
            })
            prompt = render_prompt(self._templates.classify_input, {
                "history": self._session.context_summary(self._classify_window),
                "message": text,
            })
            reply = await self._llm("classify", prompt, instructions)
        except (CompletionServiceError, PromptError) as e:
            logger.warning("Classification failed, treating as no action: %s", e)
            return CommandCall.no_action()
        return parse_command_call(reply)

    async def _narrate(self, text: str, result: CommandResult | None) -> str:
        fallback = fallback_narration(result)
        if self._llm is None:
            return fallback
        try:
            reply = await self._llm("narrate", self._narration_prompt(text, result), self._narration_instructions())
        except (CompletionServiceError, PromptError) as e:
            logger.warning("Narration failed, using fallback text: %s", e)
            return fallback
        reply = reply.strip()
        if not reply:
            logger.warning("Narration came back empty, using fallback text")
            return fallback
        return reply

    def _narration_instructions(self) -> str:
        if self._profile is not None:
            return render_prompt(self._templates.specialist_instructions, _profile_context(self._profile))
        return render_prompt(self._templates.narrate_instructions, {"persona": self.persona})

    def _narration_prompt(self, text: str, result: CommandResult | None) -> str:
        if result is None:
            return render_prompt(self._templates.narrate_none, {
                "message": text,
                "history": self._session.formatted_history(self._narrate_window),
                "return_context": self._session.return_context(),
                "visited": self._session.context_for_mission_control() if self._profile is None else "",
            })
        return render_prompt(self._templates.narrate_command, {
            "message": text,
            "command": result.command_id,
            "succeeded": result.succeeded,
            "error": result.error_message or "",
            "reason": result.message,
            "facts": fact_list(result.narration_facts),
        })

    async def _speak(self, narration: str) -> bool:
        """Voice the narration and wait for playback. Returns True if audio played."""
        clip = await self._synthesize(narration)
        if clip is None or self._player is None:
            self._display(narration)
            return False
        await self._player.play(clip)
        return True

    async def _synthesize(self, narration: str) -> AudioClip | None:
        if self._speech is None:
            return None
        try:
            return await self._speech(narration, self._voice)
        except SynthesisServiceError as e:
            logger.warning("Speech synthesis failed, showing text instead: %s", e)
            return None

    async def _introduce(self, profile: MissionProfile) -> str:
        context = _profile_context(profile)
        context["context"] = self._session.context_for_specialist()
        greeting = (
            f"Welcome to the {profile.name}. I'm the {profile.specialist_name}. "
            "What would you like to know about this mission?"
        )
        if self._llm is not None:
            try:
                reply = await self._llm(
                    "introduce",
                    render_prompt(self._templates.specialist_intro, context),
                    render_prompt(self._templates.specialist_instructions, context),
                )
                greeting = reply.strip() or greeting
            except (CompletionServiceError, PromptError) as e:
                logger.warning("Specialist introduction failed, using fallback text: %s", e)
        await self._speak(greeting)
        return greeting


# ---------------------------------------------------------------------------
# Reply parsing and fallbacks
# ---------------------------------------------------------------------------

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*|\s*```\s*$")
_EXECUTE_INTENTS = ("execute", "execute_tool")


def parse_command_call(reply: str) -> CommandCall:
    """Parse a classification reply. Anything unexpected means no action.

    Accepts {"intent", "commandId", "arguments"} and the older
    {"intent": "execute_tool", "tool", "parameters"} shape, optionally wrapped
    in a markdown code fence or surrounded by chatter.
    """
    if not isinstance(reply, str):
        return CommandCall.no_action()
    text = _FENCE.sub("", reply.strip())
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        logger.warning("Classification reply has no JSON object: %.80r", reply)
        return CommandCall.no_action()

    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        logger.warning("Classification reply is not valid JSON: %s", e)
        return CommandCall.no_action()
    if not isinstance(data, dict):
        return CommandCall.no_action()

    if data.get("intent") not in _EXECUTE_INTENTS:
        return CommandCall.no_action()

    command_id = data.get("commandId") or data.get("command_id") or data.get("tool")
    arguments = data.get("arguments")
    if arguments is None:
        arguments = data.get("parameters")
    if arguments is None:
        arguments = {}

    if not isinstance(command_id, str) or not command_id.strip() or not isinstance(arguments, dict):
        logger.warning("Classification reply has an unusable command: %r", data)
        return CommandCall.no_action()
    return CommandCall(intent="execute", command_id=command_id.strip(), arguments=arguments)


def fallback_narration(result: CommandResult | None) -> str:
    """Deterministic narration built only from the result's own facts."""
    if result is None:
        return NON_COMMAND_FALLBACK
    if not result.succeeded:
        return f"I couldn't execute that command: {result.error_message}"

    sentence = result.message or f"Command {result.command_id} completed."
    velocity = result.narration_facts.get("orbital_velocity_kmps")
    if velocity:
        sentence += f" The satellite will travel at about {velocity:.2f} km/s."
    return sentence


def _profile_context(profile: MissionProfile) -> dict[str, Any]:
    return {
        "mission": profile.mission.value,
        "specialist": profile.specialist_name,
        "personality": profile.personality,
        "knowledge": profile.specialist_context(),
    }


def _log_display(text: str) -> None:
    logger.info("display: %s", text)
