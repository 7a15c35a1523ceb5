"""Persistence port for profiles and recipe history.

Two named collections are read once at startup and rewritten in full on
every mutation. Storage failures never take the app down: missing or corrupt
data reads as an empty collection and the problem is logged.

Implementations:
- JsonFileStore: one ``<collection>.json`` file per collection in a directory
- InMemoryStore: dict-backed, used by tests and the stateless CLI mode
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from supomeshi.utils.logger import logger

PROFILES_COLLECTION = "supomeshi_profiles"
RECIPE_HISTORY_COLLECTION = "supomeshi_recipe_history"

ModelT = TypeVar("ModelT", bound=BaseModel)


class CollectionStore(Protocol):
    """Read-all / write-all access to named collections of JSON objects."""

    def read_all(self, collection: str) -> list[dict[str, Any]]: ...

    def write_all(self, collection: str, items: list[dict[str, Any]]) -> None: ...


class InMemoryStore:
    """Collection store kept in process memory."""

    def __init__(self, initial: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._collections: dict[str, list[dict[str, Any]]] = {
            name: [dict(item) for item in items] for name, items in (initial or {}).items()
        }

    def read_all(self, collection: str) -> list[dict[str, Any]]:
        return [dict(item) for item in self._collections.get(collection, [])]

    def write_all(self, collection: str, items: list[dict[str, Any]]) -> None:
        self._collections[collection] = [dict(item) for item in items]


class JsonFileStore:
    """Collection store backed by JSON files in a directory."""

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)

    def _path(self, collection: str) -> Path:
        return self.directory / f"{collection}.json"

    def read_all(self, collection: str) -> list[dict[str, Any]]:
        """Load a collection, treating missing or corrupt files as empty.

        Args:
            collection: Collection name (file stem).

        Returns:
            List of JSON objects. Non-object entries are dropped.
        """
        path = self._path(collection)
        if not path.exists():
            logger.debug(f"No stored data for {collection} at {path}")
            return []

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load {collection} from {path}, starting empty: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"Stored {collection} is not a list ({type(data).__name__}), starting empty")
            return []

        return [item for item in data if isinstance(item, dict)]

    def write_all(self, collection: str, items: list[dict[str, Any]]) -> None:
        """Replace a collection atomically (temp file + rename).

        Raises:
            OSError: If the directory or file cannot be written.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(collection)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{collection}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def load_models(store: CollectionStore, collection: str, model: type[ModelT]) -> list[ModelT]:
    """Read a collection and validate each item, skipping invalid ones."""
    loaded: list[ModelT] = []
    for idx, item in enumerate(store.read_all(collection)):
        try:
            loaded.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {collection} entry #{idx}: {e.error_count()} validation error(s)")
    return loaded


def save_models(store: CollectionStore, collection: str, items: list[BaseModel]) -> None:
    """Write models with their camelCase aliases.

    Write failures are logged and swallowed so an unwritable disk does not
    undo a successful in-memory change.
    """
    try:
        store.write_all(collection, [item.model_dump(by_alias=True) for item in items])
    except OSError as e:
        logger.error(f"Failed to save {collection}: {e}")
