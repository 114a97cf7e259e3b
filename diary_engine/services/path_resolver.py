"""
Path resolution for stored media references.

The physical shape of an old reference (bare path, URI, bucket-relative) and
the storage roots themselves drift across OS builds, sandbox containers and
reinstalls. Resolution therefore probes an explicit, ordered list of named
strategies and takes the first candidate that exists.
"""

import enum
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union
from urllib.parse import unquote

from diary_engine.services.media_reference import (
    FILE_URI_PREFIX,
    CanonicalReference,
    InvalidReferenceError,
    LegacyReference,
    MediaReference,
    parse_reference,
    path_from_file_uri,
)

logger = logging.getLogger(__name__)

# Directory names that mark the volatile cache inside an old sandbox path
CACHE_SEGMENT_NAMES = ("Caches", "cache", "Cache")


class ResolutionStrategy(str, enum.Enum):
    """Resolution strategies, in probe order."""
    VERBATIM = "verbatim"
    FILE_URI = "file_uri"
    ABSOLUTE_AS_FILE_URI = "absolute_as_file_uri"
    DOCUMENT_ROOT = "document_root"
    CACHE_ROOT = "cache_root"
    RELOCATED_CACHE = "relocated_cache"


RESOLUTION_ORDER: Tuple[ResolutionStrategy, ...] = tuple(ResolutionStrategy)


class PathResolver:
    """Turns a MediaReference into a physical file location."""
    
    def __init__(self, documents_root: Path, cache_root: Path):
        """
        Initialize resolver.
        
        Args:
            documents_root: Durable app storage (holds the buckets)
            cache_root: Volatile OS cache directory
        """
        self.documents_root = Path(documents_root)
        self.cache_root = Path(cache_root)
    
    def candidate(self, strategy: ResolutionStrategy, ref: str) -> Optional[Path]:
        """
        Candidate path for one strategy, or None when it does not apply.
        
        Args:
            strategy: Strategy to apply
            ref: Reference string as stored
        """
        if not ref:
            return None
        
        if strategy is ResolutionStrategy.VERBATIM:
            return Path(ref) if ref.startswith("/") else None
        
        if strategy is ResolutionStrategy.FILE_URI:
            if not ref.startswith(FILE_URI_PREFIX):
                return None
            try:
                return path_from_file_uri(ref)
            except InvalidReferenceError:
                return None
        
        if strategy is ResolutionStrategy.ABSOLUTE_AS_FILE_URI:
            # An absolute path that was saved with URI escaping (e.g. %20)
            return Path(unquote(ref)) if ref.startswith("/") else None
        
        if strategy is ResolutionStrategy.DOCUMENT_ROOT:
            if ref.startswith(FILE_URI_PREFIX):
                return None
            return self.documents_root / ref.lstrip("/")
        
        if strategy is ResolutionStrategy.CACHE_ROOT:
            if ref.startswith(FILE_URI_PREFIX):
                return None
            return self.cache_root / ref.lstrip("/")
        
        if strategy is ResolutionStrategy.RELOCATED_CACHE:
            return self._relocated_cache_path(ref)
        
        raise ValueError(f"Unknown resolution strategy: {strategy}")
    
    def candidates(self, ref: str) -> List[Tuple[ResolutionStrategy, Path]]:
        """All applicable (strategy, path) pairs, in probe order."""
        result = []
        for strategy in RESOLUTION_ORDER:
            path = self.candidate(strategy, ref)
            if path is not None:
                result.append((strategy, path))
        return result
    
    def resolve_with_strategy(self, ref: str) -> Optional[Tuple[ResolutionStrategy, Path]]:
        """First existing candidate together with the strategy that found it."""
        for strategy, path in self.candidates(ref):
            try:
                if path.is_file():
                    return strategy, path
            except OSError as e:
                # Unreadable parent or over-long name; try the next strategy
                logger.debug(f"Probe failed for {path} ({strategy.value}): {e}")
        return None
    
    def resolve(self, ref: Union[str, MediaReference, None]) -> Optional[Path]:
        """
        Resolve a stored reference to an existing file.
        
        Returns:
            Path of the first candidate that exists, or None (callers render
            nothing; this is not an error)
        """
        if ref is None:
            return None
        found = self.resolve_with_strategy(str(ref))
        if found is None:
            logger.debug(f"Media reference not found: {ref}")
            return None
        return found[1]
    
    def target_path(self, ref: Union[str, MediaReference]) -> Path:
        """
        Where a reference's bytes belong on this install.
        
        Canonical references live in their bucket under the documents root;
        legacy references are reconstructed at the literal absolute path they
        name, so a restored database finds its files where it expects them.
        
        Raises:
            InvalidReferenceError: If ``ref`` is neither shape
        """
        parsed = ref if isinstance(ref, (LegacyReference, CanonicalReference)) else parse_reference(ref)
        if isinstance(parsed, CanonicalReference):
            return self.documents_root / parsed.bucket.value / parsed.filename
        return parsed.path
    
    def _relocated_cache_path(self, ref: str) -> Optional[Path]:
        """Re-root the part of a legacy path after its cache directory under the current cache root."""
        try:
            parsed = parse_reference(ref)
        except InvalidReferenceError:
            return None
        if not isinstance(parsed, LegacyReference):
            return None
        
        parts = parsed.path.parts
        for index in range(len(parts) - 2, -1, -1):
            if parts[index] in CACHE_SEGMENT_NAMES:
                tail = parts[index + 1:]
                return self.cache_root.joinpath(*tail)
        return None
