"""
Content fingerprinting for unit source paths
"""

import hashlib
from typing import Optional

from ..core.exceptions import HashComputeError
from ..utils.logging_config import get_logger


class HashProbe:
    """Computes a SHA-256 content hash of a unit's backing file"""

    DEFAULT_CHUNK_SIZE = 65536

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, algorithm: str = 'sha256'):
        self.chunk_size = chunk_size
        self.algorithm = algorithm
        self.logger = get_logger('cache')

    def compute(self, source_path: str) -> str:
        """
        Hash the full contents of a file

        Raises:
            HashComputeError: On any I/O failure while reading
        """
        hasher = hashlib.new(self.algorithm)
        try:
            with open(source_path, 'rb') as f:
                while chunk := f.read(self.chunk_size):
                    hasher.update(chunk)
        except OSError as e:
            raise HashComputeError(
                f"Failed to hash file: {e.strerror or e}",
                details=type(e).__name__,
                source_path=source_path
            ) from e
        return hasher.hexdigest()

    def try_compute(self, source_path: str) -> Optional[str]:
        """Hash a file, returning None instead of raising"""
        try:
            return self.compute(source_path)
        except HashComputeError as e:
            self.logger.warning(f"Content hash unavailable: {e}")
            return None

    def matches(self, source_path: str, expected_hash: str) -> bool:
        """
        Compare a file against an expected hash

        Raises:
            HashComputeError: When the file cannot be read (inconclusive)
        """
        return self.compute(source_path) == expected_hash
