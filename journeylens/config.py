import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def _default_sqlite_uri() -> str:
    instance_path = BASE_DIR / "instance"
    instance_path.mkdir(exist_ok=True)
    return f"sqlite:///{instance_path / 'journeylens.db'}"


class Config:
    """Base configuration shared across environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", _default_sqlite_uri())
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_TIME_LIMIT = None
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Text and image generation share the Together AI OpenAI-compatible API.
    TOGETHER_API_KEY = os.environ.get("TOGETHER_AI_API") or os.environ.get("TOGETHER_API_KEY", "")
    TOGETHER_API_BASE = os.environ.get("TOGETHER_API_BASE", "https://api.together.xyz/v1")
    CHAT_MODEL = os.environ.get("CHAT_MODEL", "meta-llama/Llama-3.3-70B-Instruct-Turbo")
    TEXT_GENERATOR_MODEL_PATH = os.environ.get("TEXT_GENERATOR_MODEL_PATH")
    IMAGE_MODEL = os.environ.get("IMAGE_MODEL", "black-forest-labs/FLUX.1-schnell")
    IMAGE_REFERENCE_MODEL = os.environ.get("IMAGE_REFERENCE_MODEL", "black-forest-labs/FLUX.1-kontext-dev")
    IMAGE_WIDTH = int(os.environ.get("IMAGE_WIDTH", 1792))
    IMAGE_HEIGHT = int(os.environ.get("IMAGE_HEIGHT", 960))
    ASR_MODEL = os.environ.get("ASR_MODEL", "openai/whisper-large-v3")

    DEEPINFRA_API_KEY = os.environ.get("DEEPINFRA_API_KEY", "")
    DEEPINFRA_API_BASE = os.environ.get("DEEPINFRA_API_BASE", "https://api.deepinfra.com/v1/openai")
    TTS_MODEL = os.environ.get("TTS_MODEL", "hexgrad/Kokoro-82M")
    TTS_VOICE = os.environ.get("TTS_VOICE", "af_bella")

    AI_REQUEST_TIMEOUT = float(os.environ.get("AI_REQUEST_TIMEOUT", 120))
    CALIBRATION_THRESHOLD = int(os.environ.get("CALIBRATION_THRESHOLD", 10))
    CHAT_HISTORY_LIMIT = int(os.environ.get("CHAT_HISTORY_LIMIT", 50))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    TOGETHER_API_KEY = ""
    DEEPINFRA_API_KEY = ""
    TEXT_GENERATOR_MODEL_PATH = None
