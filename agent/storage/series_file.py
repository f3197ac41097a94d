"""
TGPH Agent - Series File

Loads and saves a TGPH store on disk, optionally wrapped in gzip.
"""

import gzip
import os
import tempfile
import zlib
from pathlib import Path
from typing import Union

import structlog

from tgph import MAGIC, FORMAT_VERSION, Store, TGPHDecodeError, decode, encode

logger = structlog.get_logger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


class SeriesFile:
    """A TGPH store persisted at a fixed path."""

    def __init__(self, path: Union[str, Path], compress: bool = False, compresslevel: int = 9):
        self.path = Path(path)
        self.compress = compress
        self.compresslevel = compresslevel

    def exists(self) -> bool:
        return self.path.is_file()

    def read_bytes(self) -> bytes:
        """Read the raw TGPH bytes, gunzipping when the file is compressed."""
        raw = self.path.read_bytes()
        # compress only affects saving; TGPH data never starts with the gzip magic
        if raw[:2] == GZIP_MAGIC:
            try:
                return gzip.decompress(raw)
            except (OSError, EOFError, zlib.error) as e:
                raise TGPHDecodeError(f"Corrupt gzip stream in {self.path}: {e}") from e
        return raw

    def load(self, entry_limit: int) -> Store:
        """Load the stored series, or an empty store if the file is missing.

        Raises:
            TGPHDecodeError: If the file exists but cannot be parsed.
        """
        if not self.exists():
            logger.info("No series file found, starting empty", path=str(self.path))
            return Store(entry_limit=entry_limit)

        store = decode(self.read_bytes(), entry_limit=entry_limit)

        if store.magic != MAGIC:
            logger.warning(
                "Unexpected series file magic",
                path=str(self.path),
                magic=store.magic.hex(),
            )
        if store.version != FORMAT_VERSION:
            logger.warning(
                "Series file version differs",
                path=str(self.path),
                version=store.version,
                expected=FORMAT_VERSION,
            )

        logger.info(
            "Series file loaded",
            path=str(self.path),
            containers=store.container_count(),
            samples=store.sample_count(),
        )
        return store

    def save(self, store: Store) -> int:
        """Write ``store`` atomically. Returns the number of bytes written."""
        payload = encode(store)
        if self.compress:
            payload = gzip.compress(payload, compresslevel=self.compresslevel)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

        logger.debug("Series file written", path=str(self.path), bytes=len(payload))
        return len(payload)
