"""Physical-model collaborator: orbit geometry and the simulation clock.

The dispatcher's handlers call into these objects with already-validated
arguments. Rendering is out of scope; a visual layer can subscribe to orbit
changes through `OrbitModel.add_listener`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
GM_EARTH = 398600.0  # km³/s²
MIN_ALTITUDE_KM = 160.0  # below this, drag dominates
MAX_ALTITUDE_KM = 35786.0  # geostationary
MAX_APOAPSIS_KM = 100000.0


def circular_speed_kmps(altitude_km: float) -> float:
    return math.sqrt(GM_EARTH / (EARTH_RADIUS_KM + altitude_km))


def periapsis_speed_kmps(periapsis_km: float, apoapsis_km: float) -> float:
    """Vis-viva speed at the low point of an elliptical orbit."""
    rp = EARTH_RADIUS_KM + periapsis_km
    ra = EARTH_RADIUS_KM + apoapsis_km
    a = (rp + ra) / 2
    return math.sqrt(GM_EARTH * (2 / rp - 1 / a))


def eccentricity(periapsis_km: float, apoapsis_km: float) -> float:
    rp = EARTH_RADIUS_KM + periapsis_km
    ra = EARTH_RADIUS_KM + apoapsis_km
    return (ra - rp) / (ra + rp)


def orbital_period_minutes(semi_major_axis_km: float) -> float:
    return 2 * math.pi * math.sqrt(semi_major_axis_km ** 3 / GM_EARTH) / 60


@dataclass
class OrbitState:
    """The orbit currently shown in the simulation."""

    kind: str  # "circular" | "elliptical"
    periapsis_km: float
    apoapsis_km: float
    inclination_deg: float
    speed_kmps: float
    eccentricity: float
    period_min: float


@dataclass
class OrbitUpdate:
    """Result of one orbit change, mirrored into narration facts."""

    updated: bool
    reason: str
    altitude_km: float | None = None
    speed_kmps: float | None = None


OrbitListener = Callable[["OrbitState | None"], None]


class OrbitModel:
    """Holds the satellite orbit and computes its derived quantities."""

    def __init__(self) -> None:
        self._orbit: OrbitState | None = None
        self._listeners: list[OrbitListener] = []

    @property
    def orbit(self) -> OrbitState | None:
        return self._orbit

    def add_listener(self, listener: OrbitListener) -> None:
        self._listeners.append(listener)

    def _publish(self) -> None:
        for listener in self._listeners:
            listener(self._orbit)

    def create_circular_orbit(self, altitude_km: float, inclination_deg: float = 0.0) -> OrbitUpdate:
        altitude_km = min(max(altitude_km, MIN_ALTITUDE_KM), MAX_ALTITUDE_KM)
        speed = circular_speed_kmps(altitude_km)
        self._orbit = OrbitState(
            kind="circular",
            periapsis_km=altitude_km,
            apoapsis_km=altitude_km,
            inclination_deg=inclination_deg,
            speed_kmps=speed,
            eccentricity=0.0,
            period_min=orbital_period_minutes(EARTH_RADIUS_KM + altitude_km),
        )
        logger.info(
            "Circular orbit: altitude=%.1f km inclination=%.1f° speed=%.2f km/s",
            altitude_km, inclination_deg, speed,
        )
        self._publish()
        return OrbitUpdate(
            updated=True,
            altitude_km=altitude_km,
            speed_kmps=speed,
            reason=f"Circular orbit created at {altitude_km:.0f}km altitude, {inclination_deg:.1f}° inclination",
        )

    def create_elliptical_orbit(
        self, periapsis_km: float, apoapsis_km: float, inclination_deg: float = 0.0
    ) -> OrbitUpdate:
        periapsis_km = min(max(periapsis_km, MIN_ALTITUDE_KM), MAX_ALTITUDE_KM)
        apoapsis_km = min(max(apoapsis_km, periapsis_km + 1), MAX_APOAPSIS_KM)
        speed = periapsis_speed_kmps(periapsis_km, apoapsis_km)
        ecc = eccentricity(periapsis_km, apoapsis_km)
        semi_major = EARTH_RADIUS_KM + (periapsis_km + apoapsis_km) / 2
        self._orbit = OrbitState(
            kind="elliptical",
            periapsis_km=periapsis_km,
            apoapsis_km=apoapsis_km,
            inclination_deg=inclination_deg,
            speed_kmps=speed,
            eccentricity=ecc,
            period_min=orbital_period_minutes(semi_major),
        )
        logger.info(
            "Elliptical orbit: %.1f x %.1f km inclination=%.1f° e=%.3f speed@periapsis=%.2f km/s",
            periapsis_km, apoapsis_km, inclination_deg, ecc, speed,
        )
        self._publish()
        return OrbitUpdate(
            updated=True,
            altitude_km=(periapsis_km + apoapsis_km) / 2,
            speed_kmps=speed,
            reason=(
                f"Elliptical orbit created: {periapsis_km:.0f}km × {apoapsis_km:.0f}km, "
                f"{inclination_deg:.1f}° inclination"
            ),
        )

    def clear_orbit(self) -> OrbitUpdate:
        self._orbit = None
        logger.info("Orbit cleared")
        self._publish()
        return OrbitUpdate(
            updated=True,
            reason="Orbit cleared successfully. Workspace is ready for a new orbital configuration.",
        )


# ---------------------------------------------------------------------------
# Simulation clock
# ---------------------------------------------------------------------------

MIN_SPEED = 0.1
MAX_SPEED = 500.0


@dataclass
class SimulationClock:
    """Time acceleration, pause state and the mission clock."""

    speed: float = 1.0
    paused: bool = False
    elapsed_s: float = 0.0
    presets: tuple[float, ...] = field(default=(1.0, 10.0, 50.0, 100.0, 250.0, 500.0))

    def set_speed(self, multiplier: float) -> float:
        self.speed = min(max(multiplier, MIN_SPEED), MAX_SPEED)
        return self.speed

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def reset(self) -> None:
        self.elapsed_s = 0.0

    def advance(self, real_seconds: float) -> None:
        """Accumulate simulated time for `real_seconds` of wall-clock time."""
        if not self.paused:
            self.elapsed_s += real_seconds * self.speed

    def formatted_time(self) -> str:
        total = int(self.elapsed_s)
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    def speed_description(self) -> str:
        if self.paused:
            return "PAUSED"
        if self.speed == 1.0:
            return "Real-Time"
        return f"{self.speed:g}x"


@dataclass
class PhysicalModel:
    """Everything a handler may touch: the orbit and the clock."""

    orbit: OrbitModel = field(default_factory=OrbitModel)
    clock: SimulationClock = field(default_factory=SimulationClock)
