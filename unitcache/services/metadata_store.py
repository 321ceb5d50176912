"""
Metadata Store

Durable, cross-run persistence of cache metadata (never handles) as a
single JSON index file inside the cache directory. Every I/O and parse
failure degrades to cold-cache behaviour with a logged warning.
"""

import json
import os
from typing import Dict

from ..core.exceptions import MetadataCorruptError
from ..core.models import MetadataRecord, INDEX_FILENAME
from ..utils.filesystem import atomic_write_text, ensure_directory
from ..utils.logging_config import get_logger


class MetadataStore:
    """
    JSON-backed metadata index

    Features:
    - Self-healing load (corrupt index == empty index)
    - Per-record validation with skip-on-error
    - Atomic overwrite on save
    - Best-effort durability (save never raises)
    """

    def __init__(self, cache_dir: str, index_filename: str = INDEX_FILENAME):
        self.cache_dir = cache_dir
        self.index_filename = index_filename
        self.logger = get_logger('metadata')

    @property
    def index_path(self) -> str:
        return os.path.join(self.cache_dir, self.index_filename)

    def exists(self) -> bool:
        return os.path.isfile(self.index_path)

    def size_bytes(self) -> int:
        try:
            return os.path.getsize(self.index_path)
        except OSError:
            return 0

    def load(self) -> Dict[str, MetadataRecord]:
        """
        Load all records from the index file

        Returns:
            Mapping of unit name -> MetadataRecord; empty if the file is
            missing, unreadable or corrupt
        """
        if not self.exists():
            return {}

        try:
            raw = self._read_index()
        except MetadataCorruptError as e:
            self.logger.warning(f"Ignoring corrupt metadata index, starting cold: {e}")
            return {}

        records: Dict[str, MetadataRecord] = {}
        for unit_name, data in raw.items():
            try:
                records[unit_name] = MetadataRecord.from_dict(unit_name, data)
            except (ValueError, TypeError) as e:
                self.logger.warning(f"Skipping malformed metadata record {unit_name!r}: {e}")

        self.logger.debug(f"Loaded {len(records)} metadata records from {self.index_path}")
        return records

    def save(self, records: Dict[str, MetadataRecord]) -> bool:
        """
        Overwrite the index file with the full mapping

        Returns:
            True if written; failures are logged, never raised
        """
        payload = {name: record.to_dict() for name, record in sorted(records.items())}
        try:
            ensure_directory(self.cache_dir)
            atomic_write_text(self.index_path, json.dumps(payload, indent=2))
        except Exception as e:
            self.logger.warning(f"Failed to save metadata index {self.index_path}: {e}")
            return False

        self.logger.debug(f"Saved {len(payload)} metadata records to {self.index_path}")
        return True

    def _read_index(self) -> Dict[str, dict]:
        try:
            with open(self.index_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MetadataCorruptError(
                "Metadata index is unreadable",
                details=str(e),
                source_path=self.index_path
            ) from e

        if not isinstance(raw, dict):
            raise MetadataCorruptError(
                f"Metadata index must be a JSON object, got {type(raw).__name__}",
                source_path=self.index_path
            )
        return raw
