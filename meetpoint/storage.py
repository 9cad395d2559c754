import json
from pathlib import Path
from typing import Any, Dict

from .logger import get_logger
from .models import Registry
from .schema import place_from_dict, place_to_dict, validate_place_entry

logger = get_logger()


class PersistenceFailure(Exception):
    """Raised when the registry or center artifact cannot be written."""


def load_registry(path: Path) -> Registry:
    """
    Load the registry file. A missing, empty or unreadable file loads as an
    empty registry; malformed entries are logged and left out.
    """
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            content = f.read().strip()
        if not content:
            return {}
        data = json.loads(content)
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Could not read registry, starting empty", path=str(path), error=str(e))
        return {}

    if not isinstance(data, dict):
        logger.error("Registry file is not a JSON object, starting empty", path=str(path))
        return {}

    registry: Registry = {}
    for name, entry in data.items():
        errors = validate_place_entry(name, entry)
        if errors:
            logger.warning("Rejected malformed registry entry", name=name, errors=errors)
            continue
        registry[name] = place_from_dict(name, entry)
    logger.debug("Registry loaded", path=str(path), places=len(registry))
    return registry


def registry_to_dict(registry: Registry) -> Dict[str, Any]:
    return {name: place_to_dict(place) for name, place in registry.items()}


def _write_json(path: Path, data: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise PersistenceFailure(f"Could not write {path}: {e}") from e


def save_registry(path: Path, registry: Registry) -> None:
    _write_json(path, registry_to_dict(registry))
    logger.info(f"Registry saved to {path}", places=len(registry))


def save_center(path: Path, center: Dict[str, Any]) -> None:
    _write_json(path, center)
    logger.info(f"Center saved to {path}")
