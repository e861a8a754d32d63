"""Environment loading helpers."""

from __future__ import annotations

from pathlib import Path

from dotenv import find_dotenv, load_dotenv

_LOADED_FROM: str | None = None


def load_env(path: Path | None = None, *, required: bool = False) -> str | None:
    """Load a .env file once per process.

    Real environment variables always win over values in the file. When
    required=True and no .env file can be found, raise so that local scripts
    don't silently run against an empty configuration.

    Returns the path that was loaded, or None.
    """
    global _LOADED_FROM
    if _LOADED_FROM is not None:
        return _LOADED_FROM

    env_file = str(path) if path is not None else find_dotenv(usecwd=True)
    if not env_file or not Path(env_file).exists():
        if required:
            raise RuntimeError(
                "No .env file found; create one from .env.example or export "
                "the variables directly."
            )
        return None

    load_dotenv(env_file, override=False)
    _LOADED_FROM = env_file
    return _LOADED_FROM
