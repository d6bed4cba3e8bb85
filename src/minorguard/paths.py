"""Model and home directory path utilities.

Centralizes model storage to ``~/.minorguard/models`` by default.
Override with ``MINORGUARD_MODELS_DIR`` or ``MINORGUARD_HOME`` environment
variables.
"""

import os
from pathlib import Path
from typing import Optional, Union


def get_home_dir() -> Path:
    """Return the minorguard home directory, creating it if needed.

    Resolution order:
        1. ``MINORGUARD_HOME`` environment variable.
        2. ``~/.minorguard`` (default).

    Returns:
        Absolute path to the home directory.
    """
    home = os.environ.get("MINORGUARD_HOME")
    if home:
        home_dir = Path(home)
    else:
        home_dir = Path.home() / ".minorguard"
    home_dir.mkdir(parents=True, exist_ok=True)
    return home_dir


def get_models_dir() -> Path:
    """Return the models directory, creating it if it doesn't exist.

    Resolution order:
        1. ``MINORGUARD_MODELS_DIR`` environment variable (absolute or
           relative to CWD).
        2. ``{home}/models`` where *home* is from :func:`get_home_dir`.

    Returns:
        Absolute path to the models directory.
    """
    env_val = os.environ.get("MINORGUARD_MODELS_DIR")
    if env_val:
        models_dir = Path(env_val)
        if not models_dir.is_absolute():
            models_dir = Path.cwd() / models_dir
    else:
        models_dir = get_home_dir() / "models"
    models_dir.mkdir(parents=True, exist_ok=True)
    return models_dir


def resolve_model_path(
    model_file: Union[str, Path],
    models_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """Resolve a model file against the models directory.

    Absolute paths are returned unchanged.

    Args:
        model_file: File name or path of the model.
        models_dir: Directory override; defaults to :func:`get_models_dir`.
    """
    path = Path(model_file)
    if path.is_absolute():
        return path
    base = Path(models_dir) if models_dir is not None else get_models_dir()
    return base / path
