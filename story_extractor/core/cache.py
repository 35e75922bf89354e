"""
Size-bounded, content-addressed cache for downloaded story images.
"""

import hashlib
import logging
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional
from urllib.parse import urlparse

from ..errors import CacheIOError, FetchError
from .fetcher import RetryingFetcher
from .imaging import crop_bottom_margin
from .models import REMOTE_SCHEMES, CacheEntry

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


def compute_ref_hash(ref: str) -> str:
    """Compute the MD5 hex digest used as a cache key."""
    return hashlib.md5(ref.encode("utf-8")).hexdigest()


def is_remote_ref(ref: Optional[str]) -> bool:
    """Check that ``ref`` is an http(s) URL with a host."""
    if not ref or not ref.strip():
        return False
    parsed = urlparse(ref.strip())
    return parsed.scheme.lower() in REMOTE_SCHEMES and bool(parsed.netloc)


class _KeyClaim:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class ContentCache:
    """
    Maps image references to durable files in one flat directory.

    Files are named ``<md5(ref)><extension>``. The file's modification time
    doubles as its last-access time and is refreshed on every hit. Once the
    directory grows past ``cleanup_threshold`` bytes the least recently used
    files are removed until it is back under the threshold.
    """

    def __init__(
        self,
        cache_dir: Path,
        fetcher: RetryingFetcher,
        max_size: int,
        cleanup_threshold: int,
        extension: str = ".png",
        postprocess: Optional[Callable[[Path], object]] = None,
    ):
        """
        Initialize the cache.

        Args:
            cache_dir: Directory owned by this cache (created if missing)
            fetcher: Downloader used on cache misses
            max_size: Hard ceiling in bytes; larger payloads are never stored
            cleanup_threshold: Eviction brings the cache back under this size
            extension: File extension for every entry
            postprocess: Optional hook run on each newly written file
        """
        if cleanup_threshold >= max_size:
            raise ValueError("cleanup_threshold must be below max_size")
        self.cache_dir = Path(cache_dir)
        self.fetcher = fetcher
        self.max_size = max_size
        self.cleanup_threshold = cleanup_threshold
        self.extension = extension if extension.startswith(".") else f".{extension}"
        self.postprocess = postprocess

        self._claims: Dict[str, _KeyClaim] = {}
        self._claims_lock = threading.Lock()
        self._evict_lock = threading.Lock()
        self._periodic = None

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"Failed to create cache directory {self.cache_dir}: {e}") from e
        self._discard_partials()
        logger.info("Image cache directory: %s", self.cache_dir)

    # --- Keys and paths ---

    def key_for(self, ref: str) -> str:
        return compute_ref_hash(ref)

    def path_for(self, ref: str) -> Path:
        """Local path an entry for ``ref`` is (or would be) stored at."""
        return self.cache_dir / f"{self.key_for(ref)}{self.extension}"

    # --- Fetching ---

    def fetch(self, ref: Optional[str]) -> Optional[Path]:
        """
        Return the local file for ``ref``, downloading it on a miss.

        Concurrent calls for the same reference share one download.

        Args:
            ref: Remote http(s) reference

        Returns:
            Path to the cached file, or None on permanent failure
        """
        if not is_remote_ref(ref):
            if ref:
                logger.warning("Ignoring non-http image reference: %s", ref[:60])
            return None
        ref = ref.strip()
        key = self.key_for(ref)
        path = self.cache_dir / f"{key}{self.extension}"

        cached = self._hit(path)
        if cached is not None:
            return cached

        with self._claim(key):
            # Another caller may have finished the download while we waited.
            cached = self._hit(path)
            if cached is not None:
                return cached
            return self._download(ref, path)

    def _hit(self, path: Path) -> Optional[Path]:
        if not _nonempty_file(path):
            return None
        try:
            os.utime(path, None)
        except OSError as e:
            # Evicted between the check and the touch.
            logger.debug("Cache entry vanished during lookup %s: %s", path.name, e)
            return None
        logger.debug("Using cached image: %s", path.name)
        return path

    def _download(self, ref: str, path: Path) -> Optional[Path]:
        try:
            data = self.fetcher.fetch(ref)
        except FetchError as e:
            logger.error("Image unavailable, leaving scene without image: %s", e)
            return None

        if len(data) > self.max_size:
            logger.warning(
                "Not caching %s: %d bytes exceeds cache maximum of %d",
                path.name, len(data), self.max_size,
            )
            return None

        try:
            self._write_atomic(path, data)
        except CacheIOError as e:
            logger.error("%s", e)
            return None
        logger.info("Cached image: %s (%d bytes)", path.name, len(data))

        if self.postprocess is not None:
            try:
                self.postprocess(path)
            except Exception as e:
                logger.error("Post-processing failed for %s, keeping original: %s", path.name, e)

        if self.total_size() > self.cleanup_threshold:
            self.evict()
        return path

    def _write_atomic(self, path: Path, data: bytes) -> None:
        tmp_path = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.cache_dir, prefix=f"{path.stem}-", suffix=PARTIAL_SUFFIX
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise CacheIOError(f"Failed to write cache file {path.name}: {e}") from e

    @contextmanager
    def _claim(self, key: str) -> Iterator[None]:
        with self._claims_lock:
            claim = self._claims.get(key)
            if claim is None:
                claim = self._claims[key] = _KeyClaim()
            claim.holders += 1
        try:
            with claim.lock:
                yield
        finally:
            with self._claims_lock:
                claim.holders -= 1
                if claim.holders == 0:
                    del self._claims[key]

    def _is_claimed(self, key: str) -> bool:
        with self._claims_lock:
            return key in self._claims

    # --- Eviction ---

    def entries(self) -> List[CacheEntry]:
        """List cache entries, oldest access first."""
        entries = []
        try:
            with os.scandir(self.cache_dir) as it:
                for item in it:
                    if not item.name.endswith(self.extension) or not item.is_file():
                        continue
                    try:
                        stat = item.stat()
                    except OSError:
                        continue
                    entries.append(CacheEntry(
                        key=item.name[: -len(self.extension)],
                        path=Path(item.path),
                        size_bytes=stat.st_size,
                        last_access=stat.st_mtime,
                    ))
        except OSError as e:
            logger.error("Failed to list cache directory: %s", e)
        entries.sort(key=lambda entry: entry.last_access)
        return entries

    def total_size(self) -> int:
        return sum(entry.size_bytes for entry in self.entries())

    def evict(self, threshold: Optional[int] = None) -> int:
        """
        Remove least recently used entries until the cache fits ``threshold``.

        Entries with a download in flight are skipped. Failures to delete a
        file are logged and the sweep moves on.

        Returns:
            Number of bytes freed
        """
        threshold = self.cleanup_threshold if threshold is None else threshold
        with self._evict_lock:
            entries = self.entries()
            current = sum(entry.size_bytes for entry in entries)
            if current <= threshold:
                return 0

            logger.info(
                "Cache size %d exceeds threshold %d, starting cleanup", current, threshold
            )
            freed = 0
            for entry in entries:
                if current - freed <= threshold:
                    break
                if self._is_claimed(entry.key):
                    continue
                try:
                    entry.path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    err = CacheIOError(f"Failed to delete cache file {entry.path.name}: {e}")
                    logger.warning("%s", err)
                    continue
                freed += entry.size_bytes
                logger.debug("Deleted old cache file: %s", entry.path.name)

            logger.info("Cleanup complete. New cache size: %d", current - freed)
            return freed

    def _safe_evict(self) -> None:
        try:
            self.evict()
        except Exception:
            logger.exception("Error during cache cleanup")

    # --- Lifecycle ---

    def start(self, pools, interval: float) -> None:
        """Schedule the periodic eviction sweep on ``pools``."""
        if self._periodic is None:
            self._periodic = pools.schedule_every("image-cache-cleanup", interval, self._safe_evict)

    def close(self) -> None:
        """Stop periodic cleanup and run a final sweep."""
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None
        self._safe_evict()
        self.fetcher.close()

    def __enter__(self) -> "ContentCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Cache management ---

    def _discard_partials(self) -> None:
        for partial in self.cache_dir.glob(f"*{PARTIAL_SUFFIX}"):
            try:
                partial.unlink()
                logger.debug("Removed stale partial file: %s", partial.name)
            except OSError as e:
                logger.warning("Failed to remove partial file %s: %s", partial.name, e)

    def clear(self) -> None:
        """Clear all cached images."""
        with self._evict_lock:
            if self.cache_dir.exists():
                shutil.rmtree(self.cache_dir)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Cache cleared")

    def get_stats(self) -> dict:
        """Get cache statistics."""
        entries = self.entries()
        total_size = sum(entry.size_bytes for entry in entries)
        return {
            "directory": str(self.cache_dir),
            "images": len(entries),
            "size_bytes": total_size,
            "size_mb": round(total_size / (1024 * 1024), 2),
            "cleanup_threshold_bytes": self.cleanup_threshold,
            "max_size_bytes": self.max_size,
            "oldest_access": entries[0].last_access if entries else None,
            "newest_access": entries[-1].last_access if entries else None,
        }

    def __repr__(self) -> str:
        stats = self.get_stats()
        return f"ContentCache(images={stats['images']}, size={stats['size_mb']}MB)"


def _nonempty_file(path: Path) -> bool:
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def build_cache(config, pools=None, session=None) -> ContentCache:
    """
    Build a ContentCache and its fetcher from an ExtractorConfig.

    When ``pools`` is given the periodic eviction sweep is scheduled on it.
    """
    headers = {"User-Agent": config.http_user_agent}
    if config.http_referer:
        headers["Referer"] = config.http_referer
    connect_timeout, read_timeout = config.http_timeout
    fetcher = RetryingFetcher(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_retries=config.retry_attempts,
        base_delay=config.retry_delay_sec,
        session=session,
        headers=headers,
    )
    postprocess = None
    if config.remove_watermark and config.watermark_crop_bottom_px > 0:
        pixels = config.watermark_crop_bottom_px
        postprocess = lambda path: crop_bottom_margin(path, pixels)
    cache = ContentCache(
        config.cache_dir,
        fetcher,
        max_size=config.cache_max_size_bytes,
        cleanup_threshold=config.cache_cleanup_threshold_bytes,
        extension=config.cache_file_extension,
        postprocess=postprocess,
    )
    if pools is not None:
        cache.start(pools, config.cache_cleanup_interval_sec)
    return cache
