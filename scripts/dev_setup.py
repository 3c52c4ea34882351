"""Write a development .env for JourneyLens and initialize the database."""
from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import Dict

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from journeylens import create_app
from journeylens.extensions import db

DEFAULT_ENV_PATH = REPO_ROOT / ".env"
BACKUP_SUFFIX = ".bak"

# CLI option name -> environment variable written to .env
_PROVIDER_OPTIONS = {
    "secret_key": "SECRET_KEY",
    "database_url": "DATABASE_URL",
    "together_api_key": "TOGETHER_API_KEY",
    "deepinfra_api_key": "DEEPINFRA_API_KEY",
    "chat_model": "CHAT_MODEL",
    "model_path": "TEXT_GENERATOR_MODEL_PATH",
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create or update the .env file used for local development and initialize the SQLite database."
    )
    parser.add_argument("--flask-app", default="journeylens", help="Flask entry point (FLASK_APP)")
    parser.add_argument("--secret-key", help="Secret key for Flask sessions; the current value is kept when omitted.")
    parser.add_argument("--database-url", help="Override DATABASE_URL (optional).")
    parser.add_argument("--together-api-key", help="Together AI key for chat, images and transcription.")
    parser.add_argument("--deepinfra-api-key", help="DeepInfra key for text-to-speech.")
    parser.add_argument("--chat-model", help="Chat model served by the OpenAI-compatible API.")
    parser.add_argument("--model-path", help="Local Hugging Face model directory used instead of the remote API.")
    parser.add_argument(
        "--env-path",
        type=Path,
        default=DEFAULT_ENV_PATH,
        help="Path to the .env file that should be created/updated.",
    )
    parser.add_argument("--skip-db", action="store_true", help="Only update the .env file.")
    return parser.parse_args()


def read_env(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    data: Dict[str, str] = {}
    for line in path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        data[key.strip()] = value.strip()
    return data


def write_env(path: Path, values: Dict[str, str]) -> None:
    if path.exists():
        backup_path = path.with_suffix(path.suffix + BACKUP_SUFFIX)
        shutil.copy(path, backup_path)
        print(f"Existing {path.name} backed up to {backup_path.name}.")
    path.write_text("".join(f"{key}={value}\n" for key, value in values.items()))
    print(f"Environment written to {path}.")


def update_env_file(args: argparse.Namespace) -> Dict[str, str]:
    env_data = read_env(args.env_path)
    env_data["FLASK_APP"] = args.flask_app
    for option, variable in _PROVIDER_OPTIONS.items():
        value = getattr(args, option)
        if value:
            env_data[variable] = value
    write_env(args.env_path, env_data)
    return env_data


def initialize_database() -> None:
    app = create_app()
    with app.app_context():
        db.create_all()
    print(f"Database initialized ({app.config['SQLALCHEMY_DATABASE_URI']}).")


def main() -> None:
    args = parse_args()
    env_values = update_env_file(args)

    if args.skip_db:
        print("Database initialization skipped.")
    else:
        initialize_database()

    print("\nSetup complete! Summary:")
    for key in sorted(env_values):
        value = env_values[key]
        if key.endswith("_KEY"):
            value = value[:4] + "..." if value else ""
        print(f"  {key}={value}")


if __name__ == "__main__":
    main()
