"""Environment transition state machine.

    Idle -> FadingOut -> ShowingMarker -> LoadingTarget -> FadingIn -> Idle

One transition at a time per process: `begin_transition` is rejected unless
the machine is Idle. The sequence runs as a background asyncio task:

  1. FadingOut       cover opacity 0 -> 1 over fade_duration
  2. ShowingMarker   the target's marker fades 0 -> 1 over marker_fade_duration
                     while the loader starts on the target (not activated)
  3. LoadingTarget   hold for max(0, minimum_dwell - marker_fade_duration),
                     then wait for the loader to report completion
  4.                 activate the target
  5. FadingIn        cover 1 -> 0 over fade_duration, marker 1 -> 0 over half
                     of it
  6. Idle

A loader failure or a load that outlasts load_timeout ends the transition:
the fault is logged, the machine returns to Idle, and the cover stays where
it was. Nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from capcom.config import TransitionSettings
from capcom.errors import TransitionLoadError
from capcom.models import Environment, TransitionPhase

logger = logging.getLogger(__name__)

PhaseListener = Callable[[TransitionPhase, "Environment | None"], None]


class SceneLoader(Protocol):
    def begin_load(self, target: Environment) -> Any: ...

    def is_complete(self, handle: Any) -> bool: ...

    def activate(self, handle: Any) -> None: ...


class TransitionView(Protocol):
    def set_cover(self, opacity: float) -> None: ...

    def set_marker(self, target: Environment | None, opacity: float) -> None: ...


class CoverView:
    """Remembers the last cover and marker opacity. Nothing is drawn."""

    def __init__(self) -> None:
        self.cover = 0.0
        self.marker = 0.0
        self.marker_target: Environment | None = None

    def set_cover(self, opacity: float) -> None:
        self.cover = opacity

    def set_marker(self, target: Environment | None, opacity: float) -> None:
        self.marker_target = target
        self.marker = opacity


class TransitionStateMachine:
    def __init__(
        self,
        loader: SceneLoader,
        view: TransitionView | None = None,
        settings: TransitionSettings | None = None,
    ) -> None:
        self._loader = loader
        self._view = view or CoverView()
        self._settings = settings or TransitionSettings()
        self._state = TransitionPhase.IDLE
        self._target: Environment | None = None
        self._task: asyncio.Task | None = None
        self._listeners: list[PhaseListener] = []
        self.last_error: TransitionLoadError | None = None

    @property
    def state(self) -> TransitionPhase:
        return self._state

    @property
    def target(self) -> Environment | None:
        return self._target

    @property
    def is_transitioning(self) -> bool:
        return self._state is not TransitionPhase.IDLE

    @property
    def view(self) -> TransitionView:
        return self._view

    def add_listener(self, listener: PhaseListener) -> None:
        self._listeners.append(listener)

    def begin_transition(self, target: Environment) -> bool:
        """Start a transition to `target`. Returns False if one is already running.

        Must be called from inside a running event loop. The check and the
        state change happen with no await in between.
        """
        loop = asyncio.get_running_loop()
        if self._state is not TransitionPhase.IDLE:
            logger.warning(
                "Transition to %s rejected: already %s (target %s)",
                target.value, self._state.value, self._target.value if self._target else None,
            )
            return False

        self._target = target
        self.last_error = None
        self._set_state(TransitionPhase.FADING_OUT)
        self._task = loop.create_task(self._run(target))
        return True

    async def wait_idle(self) -> None:
        """Wait for the running transition, if any, to finish."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Sequence
    # ------------------------------------------------------------------

    async def _run(self, target: Environment) -> None:
        s = self._settings
        logger.info("Starting transition to %s", target.value)
        try:
            await self._fade(self._view.set_cover, 0.0, 1.0, s.fade_duration)

            self._set_state(TransitionPhase.SHOWING_MARKER)
            loop = asyncio.get_running_loop()
            handle = self._loader.begin_load(target)
            deadline = loop.time() + s.load_timeout
            await self._fade(
                lambda a: self._view.set_marker(target, a), 0.0, 1.0, s.marker_fade_duration
            )

            self._set_state(TransitionPhase.LOADING_TARGET)
            await asyncio.sleep(max(0.0, s.minimum_dwell - s.marker_fade_duration))
            while not self._loader.is_complete(handle):
                if loop.time() >= deadline:
                    raise TransitionLoadError(
                        f"Loading {target.value} did not finish within {s.load_timeout:g}s"
                    )
                await asyncio.sleep(s.poll_interval)

            logger.info("Activating %s", target.value)
            self._loader.activate(handle)

            self._set_state(TransitionPhase.FADING_IN)
            await asyncio.gather(
                self._fade(self._view.set_cover, 1.0, 0.0, s.fade_duration),
                self._fade(
                    lambda a: self._view.set_marker(target, a), 1.0, 0.0, s.fade_duration / 2
                ),
            )
            logger.info("Transition to %s complete", target.value)
        except asyncio.CancelledError:
            logger.warning("Transition to %s cancelled", target.value)
            raise
        except TransitionLoadError as e:
            self.last_error = e
            logger.error("Transition to %s aborted: %s", target.value, e)
        except Exception as e:
            self.last_error = TransitionLoadError(f"Transition to {target.value} failed: {e}")
            logger.exception("Transition to %s aborted", target.value)
        finally:
            self._set_state(TransitionPhase.IDLE)

    async def _fade(
        self, setter: Callable[[float], None], start: float, end: float, duration: float
    ) -> None:
        if duration <= 0:
            setter(end)
            return
        steps = max(1, math.ceil(duration / self._settings.tick))
        for i in range(1, steps + 1):
            await asyncio.sleep(duration / steps)
            setter(start + (end - start) * i / steps)

    def _set_state(self, state: TransitionPhase) -> None:
        self._state = state
        logger.info("Transition phase: %s (%s)", state.value, self._target.value if self._target else None)
        for listener in self._listeners:
            try:
                listener(state, self._target)
            except Exception:
                logger.exception("Transition listener failed on %s", state.value)


# ---------------------------------------------------------------------------
# Simulated loader
# ---------------------------------------------------------------------------

@dataclass
class LoadHandle:
    target: Environment
    ready_at: float


ActivationListener = Callable[[Environment], None]


@dataclass
class SimulatedSceneLoader:
    """Loader for headless runs: a load completes after `latency` seconds.

    Targets in `failing` raise TransitionLoadError when polled.
    """

    latency: float = 1.0
    active: Environment = Environment.HUB
    failing: set[Environment] = field(default_factory=set)
    _listeners: list[ActivationListener] = field(default_factory=list, repr=False)

    def on_activate(self, listener: ActivationListener) -> None:
        self._listeners.append(listener)

    def begin_load(self, target: Environment) -> LoadHandle:
        ready_at = asyncio.get_running_loop().time() + self.latency
        logger.debug("Loading %s (ready in %.2fs)", target.value, self.latency)
        return LoadHandle(target=target, ready_at=ready_at)

    def is_complete(self, handle: LoadHandle) -> bool:
        if handle.target in self.failing:
            raise TransitionLoadError(f"Environment {handle.target.value} failed to load")
        return asyncio.get_running_loop().time() >= handle.ready_at

    def activate(self, handle: LoadHandle) -> None:
        self.active = handle.target
        for listener in self._listeners:
            listener(handle.target)
