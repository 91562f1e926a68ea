"""Famous quote table loader.

Maps a persona name to a literary quote, used to decorate the analysis
record with a quote from the writer the human's style most resembles.
"""

from pathlib import Path
from typing import Dict, Optional

import structlog
import yaml

from src.core.config import get_config_dir
from src.domain.models.analysis import FamousQuote

log = structlog.get_logger(__name__)

_cache: Dict[str, str] = {}


def load_famous_quotes(table_path: Optional[Path] = None) -> Dict[str, str]:
    """Load the quote table.

    A missing file yields an empty table: quote attribution is decoration
    and its absence is not an error.
    """
    if table_path is None and _cache:
        return _cache

    path = table_path or get_config_dir() / "famous_quotes.yaml"
    if not Path(path).exists():
        log.warning("famous_quotes_missing", path=str(path))
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    table = {str(name): str(quote) for name, quote in data.items()}
    if table_path is None:
        _cache.update(table)
    return table


def find_famous_quote(persona_name: str) -> Optional[FamousQuote]:
    """Quote attributed to `persona_name`, or None when the table has none."""
    quote = load_famous_quotes().get(persona_name)
    if quote is None:
        return None
    return FamousQuote(author=persona_name, quote=quote)


def clear_cache() -> None:
    """Clear the quote cache (mainly for testing)."""
    _cache.clear()
