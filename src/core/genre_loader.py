"""Genre profile loader.

Loads opening instructions and narrative hooks per genre from
config/genres.yaml.
"""

import random
from pathlib import Path
from typing import Dict, Optional

import structlog
import yaml

from src.core.config import get_config_dir
from src.core.exceptions import ConfigurationError
from src.domain.models.genre import Genre, GenreProfile

log = structlog.get_logger(__name__)

_cache: Dict[Genre, GenreProfile] = {}


def load_genre_profiles(config_path: Optional[Path] = None) -> Dict[Genre, GenreProfile]:
    """Load all genre profiles.

    Args:
        config_path: Path to genres.yaml. If None, uses config/genres.yaml
            and caches the result.

    Returns:
        Dict mapping Genre to GenreProfile

    Raises:
        ConfigurationError: If the file is missing or names an unknown genre
    """
    if config_path is None and _cache:
        return _cache

    path = config_path or get_config_dir() / "genres.yaml"
    if not Path(path).exists():
        raise ConfigurationError(f"Genre config not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    profiles: Dict[Genre, GenreProfile] = {}
    for genre_name, entry in data.items():
        try:
            genre = Genre(genre_name)
        except ValueError:
            raise ConfigurationError(f"Unknown genre in genre config: {genre_name}")
        profiles[genre] = GenreProfile(genre=genre, **entry)

    log.info("genre_profiles_loaded", path=str(path), genres=len(profiles))

    if config_path is None:
        _cache.update(profiles)
    return profiles


def get_genre_profile(genre: Genre) -> GenreProfile:
    """Profile for one genre.

    Raises:
        ConfigurationError: If the genre is not configured
    """
    profiles = load_genre_profiles()
    if genre not in profiles:
        raise ConfigurationError(f"No profile configured for genre '{genre.value}'")
    return profiles[genre]


def pick_narrative_hook(genre: Genre, rng: Optional[random.Random] = None) -> Optional[str]:
    """Random narrative hook for a genre, or None when it has none."""
    hooks = get_genre_profile(genre).hooks
    if not hooks:
        return None
    return (rng or random.Random()).choice(hooks)


def clear_cache() -> None:
    """Clear the profile cache (mainly for testing)."""
    _cache.clear()
