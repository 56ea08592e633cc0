"""
Manifest Store

Persists exactly one baseline manifest per monitored root. Saving a new
baseline for a root replaces the previous one; there is no history.
"""
import os
import json
import hashlib
import logging
from typing import Any, Dict, Optional

from .core import (
    BaselineNotFoundError,
    CorruptStoreError,
    Manifest,
    StoreReadError,
    StoreWriteError,
)
from .utils import normalize_path

logger = logging.getLogger(__name__)

DEFAULT_STORE_DIR = os.path.join(os.path.expanduser('~'), '.config_guardian', 'baselines')


class ManifestStore:
    """JSON file store for baseline manifests, keyed by root path."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the ManifestStore.

        Args:
            config: Configuration dictionary with the following keys:
                - directory: Directory holding baseline files
                  (default: ~/.config_guardian/baselines)
        """
        self.config = config or {}
        self.directory = os.path.abspath(self.config.get('directory') or DEFAULT_STORE_DIR)

    def path_for(self, root_path: str) -> str:
        """Return the baseline file used for ``root_path``."""
        key = hashlib.sha256(normalize_path(root_path).encode('utf-8')).hexdigest()
        return os.path.join(self.directory, f"{key}.json")

    def exists(self, root_path: str) -> bool:
        return os.path.isfile(self.path_for(root_path))

    def save(self, manifest: Manifest) -> str:
        """
        Save ``manifest`` as the baseline of its root, replacing any prior one.

        Args:
            manifest: Manifest to persist

        Returns:
            Path of the baseline file

        Raises:
            StoreWriteError: if the baseline could not be written
        """
        file_path = self.path_for(manifest.root_path)
        temp_path = f"{file_path}.tmp"

        try:
            os.makedirs(self.directory, exist_ok=True)

            # Write to a temporary file first, then replace (atomic operation)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(manifest.to_dict(), f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, file_path)

        except OSError as e:
            logger.error(f"Error saving baseline to {file_path}: {e}")
            # Clean up temporary file if it exists
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as cleanup_error:
                    logger.debug(f"Could not remove {temp_path}: {cleanup_error}")
            raise StoreWriteError(f"Could not write baseline {file_path}: {e}") from e

        logger.info(f"Baseline for {manifest.root_path} saved to {file_path} ({len(manifest)} files)")
        return file_path

    def load(self, root_path: str) -> Manifest:
        """
        Load the baseline recorded for ``root_path``.

        Args:
            root_path: Monitored root directory

        Returns:
            The baseline Manifest

        Raises:
            BaselineNotFoundError: if no baseline exists for the root
            CorruptStoreError: if the baseline cannot be decoded or was written
                by an incompatible schema version
            StoreReadError: if the baseline file could not be read
        """
        file_path = self.path_for(root_path)
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            raise BaselineNotFoundError(root_path) from None
        except json.JSONDecodeError as e:
            raise CorruptStoreError(f"Invalid JSON in baseline file {file_path}: {e}") from e
        except UnicodeDecodeError as e:
            raise CorruptStoreError(f"Baseline file {file_path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise StoreReadError(f"Could not read baseline file {file_path}: {e}") from e

        try:
            manifest = Manifest.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptStoreError(f"Baseline file {file_path} is corrupt: {e}") from e

        if normalize_path(manifest.root_path) != normalize_path(root_path):
            raise CorruptStoreError(
                f"Baseline file {file_path} belongs to {manifest.root_path}, not {root_path}"
            )

        logger.info(f"Loaded baseline for {root_path} from {file_path} with {len(manifest)} files")
        return manifest

    def delete(self, root_path: str) -> bool:
        """Remove the baseline of ``root_path``. Returns False if there was none."""
        file_path = self.path_for(root_path)
        try:
            os.remove(file_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreWriteError(f"Could not delete baseline {file_path}: {e}") from e
        logger.info(f"Deleted baseline for {root_path}")
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(directory='{self.directory}')"
