"""
Tests for media reference parsing.

Tests cover:
- Canonical <bucket>/<filename> references
- Legacy absolute paths and file:// URIs
- Rejection of everything else
"""

from pathlib import Path

import pytest

from diary_engine.services.media_reference import (
    Bucket,
    CanonicalReference,
    InvalidReferenceError,
    LegacyReference,
    canonical_reference,
    is_legacy,
    parse_reference,
)


class TestParseReference:
    """Test suite for parse_reference."""
    
    def test_canonical_reference(self):
        ref = parse_reference("images/1700000000000_0042.jpg")
        
        assert isinstance(ref, CanonicalReference)
        assert ref.bucket is Bucket.IMAGES
        assert ref.filename == "1700000000000_0042.jpg"
        assert ref.raw == "images/1700000000000_0042.jpg"
    
    def test_profiles_bucket(self):
        ref = parse_reference("profiles/p1.jpg")
        assert ref == CanonicalReference(bucket=Bucket.PROFILES, filename="p1.jpg")
    
    def test_absolute_path_is_legacy(self):
        ref = parse_reference("/var/mobile/Containers/Data/Library/Caches/img123.jpg")
        
        assert isinstance(ref, LegacyReference)
        assert ref.path == Path("/var/mobile/Containers/Data/Library/Caches/img123.jpg")
        assert not ref.is_uri
    
    def test_file_uri_is_legacy_and_decoded(self):
        ref = parse_reference("file:///data/cache/My%20Photo.jpg")
        
        assert isinstance(ref, LegacyReference)
        assert ref.is_uri
        assert ref.path == Path("/data/cache/My Photo.jpg")
        # Raw string is kept exactly as stored
        assert str(ref) == "file:///data/cache/My%20Photo.jpg"
    
    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "photo.jpg",
        "videos/clip.mp4",
        "images/nested/photo.jpg",
        "images//photo.jpg",
        "images/..",
        "https://example.com/photo.jpg",
    ])
    def test_rejects_unrecognized(self, raw):
        with pytest.raises(InvalidReferenceError):
            parse_reference(raw)
    
    def test_none_rejected(self):
        with pytest.raises(InvalidReferenceError):
            parse_reference(None)


def test_canonical_reference_validates_filename():
    assert canonical_reference(Bucket.IMAGES, "a.jpg").raw == "images/a.jpg"
    with pytest.raises(InvalidReferenceError):
        canonical_reference(Bucket.IMAGES, "../escape.jpg")


def test_is_legacy():
    assert is_legacy("/tmp/a.jpg")
    assert is_legacy("file:///tmp/a.jpg")
    assert not is_legacy("images/a.jpg")
    # Unparseable strings are not legacy; migration leaves them alone
    assert not is_legacy("garbage")
