"""Runtime settings.

Defaults cover everything; a JSON file (passed in, or named by CAPCOM_CONFIG)
overrides any subset of keys, nested sections included. API keys are read
from the environment only.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from capcom.llm import ProviderFormat
from capcom.prompts import PromptTemplates
from capcom.speech import DEFAULT_SAMPLE_RATE, VoiceSettings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CAPCOM_CONFIG"


class LLMSettings(BaseModel):
    provider_url: str = "https://api.openai.com"
    provider_format: ProviderFormat = "openai"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    timeout: float = 30.0

    @property
    def enabled(self) -> bool:
        # KoboldCpp runs locally without a key
        return bool(self.api_key) or self.provider_format == "koboldcpp"


class SpeechSettings(BaseModel):
    enabled: bool = True
    base_url: str = "https://api.elevenlabs.io/v1"
    api_key: str = ""
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    sample_rate: int = DEFAULT_SAMPLE_RATE
    timeout: float = 30.0


class SessionSettings(BaseModel):
    capacity: int = Field(default=10, ge=1)
    classify_window: int = Field(default=3, ge=0)
    narrate_window: int = Field(default=5, ge=0)


class TransitionSettings(BaseModel):
    """Durations in seconds."""

    fade_duration: float = Field(default=2.0, ge=0)
    marker_fade_duration: float = Field(default=2.0, ge=0)
    minimum_dwell: float = Field(default=4.0, ge=0)
    load_timeout: float = Field(default=30.0, gt=0)
    tick: float = Field(default=1 / 30, gt=0)
    poll_interval: float = Field(default=0.05, gt=0)
    simulated_load_latency: float = Field(default=1.0, ge=0)


class Settings(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    speech: SpeechSettings = Field(default_factory=SpeechSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    transition: TransitionSettings = Field(default_factory=TransitionSettings)
    prompts: PromptTemplates = Field(default_factory=PromptTemplates)
    commands_path: Path | None = None  # None means the packaged catalog


def load_settings(path: Path | str | None = None) -> Settings:
    """Build Settings from defaults, an optional JSON file, and the environment."""
    data: dict[str, Any] = {}

    config_path = path or os.getenv(CONFIG_ENV_VAR)
    if config_path:
        config_path = Path(config_path)
        if config_path.exists():
            loaded = json.loads(config_path.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError(f"Settings file {config_path} must hold a JSON object")
            data = loaded
            logger.info("Loaded settings from %s", config_path)
        else:
            logger.warning("Settings file %s not found, using defaults", config_path)

    openai_key = os.getenv("OPENAI_API_KEY")
    if openai_key:
        data.setdefault("llm", {})["api_key"] = openai_key
    elevenlabs_key = os.getenv("ELEVENLABS_API_KEY")
    if elevenlabs_key:
        data.setdefault("speech", {})["api_key"] = elevenlabs_key

    return Settings.model_validate(data)

