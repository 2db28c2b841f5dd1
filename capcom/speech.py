"""Speech synthesis and playback.

`ElevenLabsSpeech` turns narration into raw 16-bit mono PCM. Playback is a
separate collaborator so the orchestrator can await the end of a clip
without knowing how (or whether) audio reaches a speaker.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from capcom.errors import SynthesisServiceError

logger = logging.getLogger(__name__)

DEFAULT_VOICE_ID = "NOpBlnGInO9m6vDvFkFC"
DEFAULT_SAMPLE_RATE = 22050
BYTES_PER_SAMPLE = 2  # 16-bit mono


class VoiceSettings(BaseModel):
    """Voice identity passed along with every synthesis request."""

    model_config = ConfigDict(frozen=True)

    voice_id: str = DEFAULT_VOICE_ID
    model_id: str = "eleven_flash_v2_5"
    stability: float = Field(default=0.7, ge=0, le=1)
    similarity_boost: float = Field(default=0.8, ge=0, le=1)


class AudioClip(BaseModel):
    """A decoded, playable buffer of PCM audio."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    sample_rate: int = DEFAULT_SAMPLE_RATE

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.data) / (BYTES_PER_SAMPLE * self.sample_rate)


class Synthesizer(Protocol):
    async def __call__(self, text: str, voice: VoiceSettings | None = None) -> AudioClip | None: ...


class AudioPlayer(Protocol):
    async def play(self, clip: AudioClip) -> None: ...

    def stop(self) -> None: ...


# ---------------------------------------------------------------------------
# ElevenLabs
# ---------------------------------------------------------------------------

class ElevenLabsSpeech:
    """Text-to-speech via the ElevenLabs REST API.

    Requests raw PCM (`output_format=pcm_<rate>`) so the clip can be played
    and timed without a decoder. Returns None for blank text.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io/v1",
        voice: VoiceSettings | None = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._voice = voice or VoiceSettings()
        self._sample_rate = sample_rate
        self._timeout = timeout

    async def __call__(self, text: str, voice: VoiceSettings | None = None) -> AudioClip | None:
        if not text or not text.strip():
            return None
        if not self._api_key:
            raise SynthesisServiceError("No speech API key configured")

        voice = voice or self._voice
        url = f"{self._base_url}/text-to-speech/{voice.voice_id}"
        body = {
            "text": text,
            "model_id": voice.model_id,
            "voice_settings": {
                "stability": voice.stability,
                "similarity_boost": voice.similarity_boost,
            },
        }
        headers = {"xi-api-key": self._api_key, "Content-Type": "application/json"}
        logger.debug("tts request voice=%s text_len=%d", voice.voice_id, len(text))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    url,
                    json=body,
                    headers=headers,
                    params={"output_format": f"pcm_{self._sample_rate}"},
                )
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise SynthesisServiceError(f"Cannot connect to speech backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise SynthesisServiceError(f"Speech backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise SynthesisServiceError(f"Speech backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise SynthesisServiceError(f"Speech request failed: {e}") from e

        data = resp.content
        if not data:
            raise SynthesisServiceError("Speech backend returned no audio")
        clip = AudioClip(data=data, sample_rate=self._sample_rate)
        logger.debug("tts response bytes=%d duration=%.2fs", len(data), clip.duration)
        return clip


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------

class SimulatedPlayer:
    """Plays nothing, but takes as long as the clip lasts.

    `stop()` cuts the current clip short; the pending `play()` returns early.
    """

    def __init__(self, speed: float = 1.0) -> None:
        self._speed = speed
        self._current: asyncio.Event | None = None
        self.played: list[AudioClip] = []

    @property
    def is_playing(self) -> bool:
        return self._current is not None

    async def play(self, clip: AudioClip) -> None:
        self.stop()
        done = asyncio.Event()
        self._current = done
        self.played.append(clip)
        logger.debug("Playing clip (%.2fs)", clip.duration)
        try:
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(done.wait(), timeout=clip.duration / self._speed)
        finally:
            if self._current is done:
                self._current = None

    def stop(self) -> None:
        if self._current is not None:
            self._current.set()
            self._current = None
