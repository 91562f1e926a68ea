"""Persona catalog loader.

Loads the genre-keyed persona catalog from config/personas.yaml and draws
the two personas used by a session.
"""

import json
import random
from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml

from src.core.config import get_config_dir
from src.core.exceptions import ConfigurationError
from src.domain.models.genre import Genre
from src.domain.models.persona import Persona, PersonaPair

log = structlog.get_logger(__name__)

# Module-level cache (personas don't change at runtime)
_cache: Dict[Genre, List[Persona]] = {}


def load_persona_catalog(catalog_path: Optional[Path] = None) -> Dict[Genre, List[Persona]]:
    """Load the persona catalog.

    Args:
        catalog_path: Path to personas.yaml. If None, uses config/personas.yaml
            and caches the result.

    Returns:
        Dict mapping Genre to its personas, in file order

    Raises:
        ConfigurationError: If the file is missing, names an unknown genre,
            or gives a genre fewer than two personas
    """
    if catalog_path is None and _cache:
        return _cache

    path = catalog_path or get_config_dir() / "personas.yaml"
    if not Path(path).exists():
        raise ConfigurationError(f"Persona catalog not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    catalog: Dict[Genre, List[Persona]] = {}
    for genre_name, entries in data.items():
        try:
            genre = Genre(genre_name)
        except ValueError:
            raise ConfigurationError(f"Unknown genre in persona catalog: {genre_name}")
        personas = [Persona(**entry) for entry in entries or []]
        if len(personas) < 2:
            raise ConfigurationError(
                f"Genre '{genre_name}' needs at least two personas, got {len(personas)}"
            )
        catalog[genre] = personas

    log.info(
        "persona_catalog_loaded",
        path=str(path),
        genres=len(catalog),
        personas=sum(len(p) for p in catalog.values()),
    )

    if catalog_path is None:
        _cache.update(catalog)
    return catalog


def list_personas(genre: Genre) -> List[Persona]:
    """Personas available for a genre.

    Raises:
        ConfigurationError: If the genre has no catalog entry
    """
    catalog = load_persona_catalog()
    if genre not in catalog:
        raise ConfigurationError(f"No personas configured for genre '{genre.value}'")
    return list(catalog[genre])


def sample_persona_pair(genre: Genre, rng: Optional[random.Random] = None) -> PersonaPair:
    """Draw two personas for a genre without replacement."""
    rng = rng or random.Random()
    first, second = rng.sample(list_personas(genre), 2)
    return PersonaPair(first=first, second=second)


def catalog_as_json() -> str:
    """Serialize the whole catalog for the style-match generator.

    Keys are genre names, values are lists of {name, description}.
    """
    catalog = load_persona_catalog()
    return json.dumps(
        {
            genre.value: [persona.model_dump() for persona in personas]
            for genre, personas in catalog.items()
        },
        ensure_ascii=False,
    )


def clear_cache() -> None:
    """Clear the catalog cache (mainly for testing)."""
    _cache.clear()
