"""
Tests for PathResolver.

Tests cover:
- Each resolution strategy finding the file it is meant to find
- Probe order when several candidates exist
- Missing files resolving to None
- Restore targets for canonical and legacy references
"""

from pathlib import Path

import pytest

from diary_engine.services.media_reference import InvalidReferenceError
from diary_engine.services.path_resolver import ResolutionStrategy

from helpers import write_photo


class TestResolve:
    """Test suite for PathResolver.resolve."""
    
    def test_canonical_reference_under_documents_root(self, resolver, config):
        photo = write_photo(config.paths.documents / "images" / "a.jpg")
        
        assert resolver.resolve("images/a.jpg") == photo
        assert resolver.resolve_with_strategy("images/a.jpg")[0] is ResolutionStrategy.DOCUMENT_ROOT
    
    def test_absolute_path_verbatim(self, resolver, tmp_path):
        photo = write_photo(tmp_path / "elsewhere" / "b.jpg")
        
        strategy, path = resolver.resolve_with_strategy(str(photo))
        assert strategy is ResolutionStrategy.VERBATIM
        assert path == photo
    
    def test_file_uri(self, resolver, tmp_path):
        photo = write_photo(tmp_path / "picker" / "My Photo.jpg")
        uri = "file://" + str(photo).replace(" ", "%20")
        
        strategy, path = resolver.resolve_with_strategy(uri)
        assert strategy is ResolutionStrategy.FILE_URI
        assert path == photo
    
    def test_absolute_path_saved_with_uri_escaping(self, resolver, tmp_path):
        photo = write_photo(tmp_path / "picker" / "My Photo.jpg")
        escaped = str(photo).replace(" ", "%20")
        
        strategy, path = resolver.resolve_with_strategy(escaped)
        assert strategy is ResolutionStrategy.ABSOLUTE_AS_FILE_URI
        assert path == photo
    
    def test_relative_reference_in_cache_root(self, resolver, config):
        photo = write_photo(config.paths.cache / "ImagePicker" / "c.jpg")
        
        strategy, path = resolver.resolve_with_strategy("ImagePicker/c.jpg")
        assert strategy is ResolutionStrategy.CACHE_ROOT
        assert path == photo
    
    def test_old_sandbox_cache_path_relocated(self, resolver, config):
        # Container id changed since the reference was written
        photo = write_photo(config.paths.cache / "ImagePicker" / "d.jpg")
        old_ref = "file:///var/mobile/Containers/Data/Application/OLD-UUID/Library/Caches/ImagePicker/d.jpg"
        
        strategy, path = resolver.resolve_with_strategy(old_ref)
        assert strategy is ResolutionStrategy.RELOCATED_CACHE
        assert path == photo
    
    def test_verbatim_wins_over_later_strategies(self, resolver, config, tmp_path):
        original = write_photo(tmp_path / "x" / "e.jpg", b"original")
        write_photo(config.paths.documents / str(original).lstrip("/"), b"shadow")
        
        assert resolver.resolve(str(original)).read_bytes() == b"original"
    
    def test_missing_file_returns_none(self, resolver, tmp_path):
        assert resolver.resolve(str(tmp_path / "gone.jpg")) is None
        assert resolver.resolve("images/never-stored.jpg") is None
        assert resolver.resolve("") is None
        assert resolver.resolve(None) is None
    
    def test_directory_is_not_a_match(self, resolver, config):
        (config.paths.documents / "images" / "folder.jpg").mkdir(parents=True)
        assert resolver.resolve("images/folder.jpg") is None


def test_candidates_follow_probe_order(resolver, config):
    strategies = [strategy for strategy, _ in resolver.candidates("/photos/f.jpg")]
    
    assert strategies == [
        ResolutionStrategy.VERBATIM,
        ResolutionStrategy.ABSOLUTE_AS_FILE_URI,
        ResolutionStrategy.DOCUMENT_ROOT,
        ResolutionStrategy.CACHE_ROOT,
    ]
    assert dict(resolver.candidates("/photos/f.jpg"))[ResolutionStrategy.CACHE_ROOT] == (
        config.paths.cache / "photos" / "f.jpg"
    )


class TestTargetPath:
    """Test suite for PathResolver.target_path."""
    
    def test_canonical_target_is_bucket_path(self, resolver, config):
        assert resolver.target_path("profiles/p1.jpg") == config.paths.documents / "profiles" / "p1.jpg"
    
    def test_legacy_target_is_literal_path(self, resolver):
        assert resolver.target_path("/old/Caches/img.jpg") == Path("/old/Caches/img.jpg")
        assert resolver.target_path("file:///old/Caches/my%20img.jpg") == Path("/old/Caches/my img.jpg")
    
    def test_invalid_reference_raises(self, resolver):
        with pytest.raises(InvalidReferenceError):
            resolver.target_path("not-a-reference")
