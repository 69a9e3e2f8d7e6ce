from __future__ import annotations

import os

APP_NAME = "AI MIDI Composer"
BRIDGE_HOST = os.environ.get("COMPOSER_HOST", "127.0.0.1")
BRIDGE_PORT = int(os.environ.get("COMPOSER_PORT", "8765"))
LOG_LEVEL = os.environ.get("COMPOSER_LOG_LEVEL", "INFO")
LOG_PREVIEW_CHARS = 800

PROVIDER_OPENAI = "openai"
PROVIDER_OPENROUTER = "openrouter"
PROVIDER_LMSTUDIO = "lmstudio"
PROVIDER_OLLAMA = "ollama"
HOSTED_PROVIDERS = (PROVIDER_OPENAI, PROVIDER_OPENROUTER)

DEFAULT_PROVIDER = os.environ.get("COMPOSER_PROVIDER", PROVIDER_OPENAI)
DEFAULT_MODEL_NAME = os.environ.get("COMPOSER_MODEL", "gpt-4-turbo")
DEFAULT_OPENROUTER_MODEL = "openai/gpt-4-turbo"
DEFAULT_LOCAL_MODEL = "local-model"
DEFAULT_BASE_URL = os.environ.get("COMPOSER_BASE_URL")
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_LMSTUDIO_BASE_URL = "http://127.0.0.1:1234/v1"
DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")

API_KEY_ENV_VARS = {
    PROVIDER_OPENAI: "OPENAI_API_KEY",
    PROVIDER_OPENROUTER: "OPENROUTER_API_KEY",
}

DEFAULT_TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 4000
HTTP_TIMEOUT_SEC = float(os.environ.get("COMPOSER_HTTP_TIMEOUT", "180"))

MIDI_MIN = 0
MIDI_MAX = 127
MIDI_VEL_MIN = 1
MIDI_CHANNEL_COUNT = 16
DRUM_CHANNEL = 9
DEFAULT_TICKS_PER_BEAT = 480
SECONDS_PER_MINUTE = 60.0

DEFAULT_TEMPO_BPM = 120.0
DEFAULT_TIME_SIG_NUM = 4
DEFAULT_TIME_SIG_DEN = 4
DEFAULT_KEY_SIGNATURE = "C"

DEFAULT_NOTE_DURATION = 0.5
DEFAULT_NOTE_VELOCITY = 0.8

DEFAULT_SAMPLE_NOTES = 100
SUMMARY_DECIMALS = 2
UNNAMED_TRACK = "Unnamed"
UNKNOWN_INSTRUMENT = "Unknown"

FULL_COMPOSITION_LABEL = "Full Composition"
AI_TRACK_NAME = "AI Generated"

MIDI_FILE_EXTENSIONS = (".mid", ".midi")
