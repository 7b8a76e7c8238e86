"""
File fingerprinting: size first, content hash only when needed.

This module is responsible for:
- Building Fingerprints (size, optional content hash) for catalog entries
- Streaming 64-bit xxHash over file contents in fixed-size chunks
- Hashing many files concurrently with a bounded thread pool
- Bounding the time spent reading a single file (slow network mounts)
- Honouring cooperative cancellation between files and between chunks

The hash is a duplicate-detection heuristic, not a security boundary, so a
fast non-cryptographic hash is used.
"""

import logging
import os
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence, Tuple

import xxhash

from .errors import HashTimeoutError, OperationCancelled
from .scanner import check_cancelled
from .types import FileEntry, Fingerprint, ScanError

logger = logging.getLogger(__name__)

# Read size for streaming hashes (64KB)
CHUNK_SIZE = 65536

# How often the collector wakes up to check cancellation and timeouts
POLL_INTERVAL = 0.1


def hash_file(
    path: str,
    cancel_event: Optional[threading.Event] = None,
    read_timeout: Optional[float] = None,
    chunk_size: int = CHUNK_SIZE
) -> str:
    """
    Compute the xxh64 hex digest of a file's contents.

    The file is read in chunks; cancellation and the read deadline are
    checked between chunks, and the file is always closed before an
    exception propagates.

    Args:
        path: File to hash
        cancel_event: Optional event that aborts the read
        read_timeout: Optional limit in seconds for reading the whole file
        chunk_size: Bytes per read

    Returns:
        16-character lowercase hex digest

    Raises:
        OSError: If the file cannot be read
        HashTimeoutError: If reading exceeds read_timeout
        OperationCancelled: If cancel_event is set during the read
    """
    hasher = xxhash.xxh64()
    deadline = time.monotonic() + read_timeout if read_timeout is not None else None

    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            check_cancelled(cancel_event)
            if deadline is not None and time.monotonic() > deadline:
                raise HashTimeoutError(f"Read timed out after {read_timeout}s: {path}")
            hasher.update(chunk)

    return hasher.hexdigest()


def fingerprint(entry: FileEntry, require_hash: bool = False) -> Fingerprint:
    """
    Build the fingerprint of a catalog entry.

    The size always comes from the scan snapshot. The content hash is only
    included when require_hash is true; a hash already carried by the entry
    is reused instead of reading the file again.

    Raises:
        OSError: If the hash is required and the file is unreadable
    """
    if not require_hash:
        return Fingerprint(size=entry.size)

    content_hash = entry.content_hash or hash_file(entry.path)
    return Fingerprint(size=entry.size, content_hash=content_hash)


class Fingerprinter:
    """
    Computes and caches content hashes for a single analysis run.

    Hashing is the only heavy step of an analysis, so it runs on a bounded
    pool of worker threads. Workers share nothing but the hash cache, which
    is guarded by a lock.
    """

    def __init__(
        self,
        max_workers: int = 4,
        read_timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize the fingerprinter.

        Args:
            max_workers: Upper bound on concurrent hashing threads
            read_timeout: Seconds allowed for reading one file (None = no limit)
            cancel_event: Optional event checked between files and chunks; an
                          own event is created when none is given, and it is
                          set when hashing is interrupted
        """
        self.max_workers = max(1, max_workers)
        self.read_timeout = read_timeout
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()

        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    def hash_path(self, path: str) -> str:
        """Hash a file, reusing a cached digest when available."""
        with self._lock:
            cached = self._cache.get(path)
        if cached is not None:
            return cached

        digest = hash_file(path, self.cancel_event, self.read_timeout)

        with self._lock:
            self._cache[path] = digest
        return digest

    def fingerprint(self, entry: FileEntry, require_hash: bool = False) -> Fingerprint:
        """Fingerprint a catalog entry, hashing it only when required."""
        if not require_hash:
            return Fingerprint(size=entry.size)

        content_hash = entry.content_hash or self.hash_path(entry.path)
        return Fingerprint(size=entry.size, content_hash=content_hash)

    def fingerprint_path(self, path: str) -> Fingerprint:
        """
        Fingerprint a file that is not part of the catalog (e.g. a file
        already sitting at a planned destination).

        Raises:
            OSError: If the file cannot be stat'ed or read
        """
        size = os.stat(path).st_size
        return Fingerprint(size=size, content_hash=self.hash_path(path))

    def hash_entries(
        self,
        entries: Sequence[FileEntry]
    ) -> Tuple[List[FileEntry], List[ScanError]]:
        """
        Hash many entries concurrently.

        Unreadable or timed-out files are recorded as errors and left out of
        the result; they never abort the batch.

        Args:
            entries: Entries to hash

        Returns:
            Tuple of (entries carrying their hash, in input order; errors)

        Raises:
            OperationCancelled: If the cancel event is set
        """
        if not entries:
            return [], []

        digests: Dict[str, str] = {}
        errors: List[ScanError] = []
        started: Dict[str, float] = {}
        abandoned = False

        def _run(entry: FileEntry) -> str:
            started[entry.path] = time.monotonic()
            return self.hash_path(entry.path)

        workers = min(self.max_workers, len(entries))
        logger.debug(f"Hashing {len(entries)} files with {workers} workers")

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sorty-hash")
        try:
            futures: Dict[Future, FileEntry] = {}
            for entry in entries:
                check_cancelled(self.cancel_event)
                if entry.content_hash is not None:
                    digests[entry.path] = entry.content_hash
                    continue
                futures[executor.submit(_run, entry)] = entry

            pending = set(futures)
            while pending:
                check_cancelled(self.cancel_event)
                done, pending = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)

                for future in done:
                    entry = futures[future]
                    try:
                        digests[entry.path] = future.result()
                    except OSError as e:
                        logger.warning(f"Cannot hash {entry.path}: {e}")
                        errors.append(ScanError(path=entry.path, message=str(e), phase="hash"))

                if self.read_timeout is None:
                    continue

                # A read stuck inside a single syscall never reaches the
                # per-chunk deadline; give up on it from here instead.
                now = time.monotonic()
                for future in list(pending):
                    entry = futures[future]
                    start = started.get(entry.path)
                    if start is not None and now - start > self.read_timeout + POLL_INTERVAL:
                        pending.discard(future)
                        abandoned = True
                        message = f"Read timed out after {self.read_timeout}s"
                        logger.warning(f"Cannot hash {entry.path}: {message}")
                        errors.append(ScanError(path=entry.path, message=message, phase="hash"))

        except OperationCancelled:
            logger.info("Hashing cancelled")
            raise
        except KeyboardInterrupt:
            # Stop workers at their next chunk instead of joining full reads
            logger.info("Hashing interrupted, stopping workers")
            self.cancel_event.set()
            abandoned = True
            raise
        finally:
            executor.shutdown(wait=not abandoned, cancel_futures=True)

        hashed = [
            entry.with_hash(digests[entry.path])
            for entry in entries
            if entry.path in digests
        ]
        errors.sort(key=lambda e: e.path)
        return hashed, errors
