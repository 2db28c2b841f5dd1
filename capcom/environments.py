"""Mission profiles: who the user meets in each mission environment."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict

from capcom.models import Environment
from capcom.speech import VoiceSettings

logger = logging.getLogger(__name__)

CAPCOM_PERSONA = "CAPCOM (Capsule Communicator) at Mission Control"


class MissionProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    mission: Environment
    name: str
    category: str
    specialist_name: str
    personality: str
    knowledge: str
    reference_preset: str | None = None  # registry preset applied on arrival
    voice: VoiceSettings | None = None
    related: tuple[Environment, ...] = ()

    def specialist_context(self) -> str:
        return f"MISSION: {self.name}\n\nKNOWLEDGE:\n{self.knowledge}"


PROFILES: dict[Environment, MissionProfile] = {
    Environment.ISS: MissionProfile(
        mission=Environment.ISS,
        name="International Space Station",
        category="LEO",
        specialist_name="ISS Flight Engineer",
        personality="Professional engineer: clear, technical, friendly.",
        knowledge=(
            "ISS orbits at 420 km altitude with 51.6° inclination.\n"
            "The inclination is set by the Baikonur launch site latitude.\n"
            "Period: 92.8 minutes (15.5 orbits per day).\n"
            "Purpose: crewed operations, microgravity research, Earth observation."
        ),
        reference_preset="ISS",
        related=(Environment.HUBBLE,),
    ),
    Environment.GPS: MissionProfile(
        mission=Environment.GPS,
        name="GPS Constellation",
        category="MEO",
        specialist_name="GPS Operations Manager",
        personality="Methodical and precise, enjoys explaining coverage geometry.",
        knowledge=(
            "GPS satellites orbit at 20,200 km altitude with 55° inclination.\n"
            "Six orbital planes with at least 24 operational satellites.\n"
            "Period: about 12 hours (two orbits per sidereal day).\n"
            "At least four satellites are visible from almost anywhere on Earth."
        ),
        reference_preset="GPS",
    ),
    Environment.VOYAGER: MissionProfile(
        mission=Environment.VOYAGER,
        name="Voyager Interstellar Mission",
        category="Interplanetary",
        specialist_name="Voyager Mission Navigator",
        personality="Patient storyteller with a sense of scale.",
        knowledge=(
            "Voyager 1 and 2 launched in 1977 on escape trajectories.\n"
            "Gravity assists at Jupiter and Saturn raised their speed above solar escape velocity.\n"
            "Voyager 1 crossed the heliopause in 2012 and is in interstellar space.\n"
            "They no longer orbit Earth, so there is no Earth-orbit preset to show."
        ),
    ),
    Environment.HUBBLE: MissionProfile(
        mission=Environment.HUBBLE,
        name="Hubble Space Telescope",
        category="LEO",
        specialist_name="Hubble Operations Scientist",
        personality="Curious scientist, focused on observation trade-offs.",
        knowledge=(
            "Hubble orbits at about 540 km altitude with 28.5° inclination.\n"
            "The inclination matches the Kennedy Space Center launch latitude.\n"
            "Period: about 95 minutes.\n"
            "Atmospheric drag slowly lowers the orbit; servicing missions reboosted it."
        ),
        reference_preset="Hubble",
        related=(Environment.ISS,),
    ),
}


def get_profile(environment: Environment | str) -> MissionProfile | None:
    env = environment if isinstance(environment, Environment) else Environment.parse(environment)
    if env is None:
        return None
    profile = PROFILES.get(env)
    if profile is None and env is not Environment.HUB:
        logger.warning("No mission profile for %s", env.value)
    return profile
