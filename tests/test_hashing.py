"""
Tests for the hashing and path helpers in config_guardian.utils.
"""
import os
import sys
import hashlib
import pytest
from unittest.mock import patch

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config_guardian.core import FileAccessError, Readable, Unreadable
from config_guardian.utils import (
    compute_digest,
    excludes_for,
    format_size,
    hash_file,
    is_within,
    should_ignore_path,
)


class TestHashFile:
    """Tests for hash_file and compute_digest."""

    def test_digest_matches_sha256(self, tmp_path):
        """Test that the digest is the SHA-256 of the file contents."""
        path = tmp_path / 'a.conf'
        path.write_bytes(b'listen 80\n')

        result = hash_file(str(path))

        assert result == Readable(hashlib.sha256(b'listen 80\n').hexdigest())
        assert len(result.digest) == 64

    def test_large_file_streamed_in_chunks(self, tmp_path):
        """Test that files larger than one chunk hash the same as a one-shot read."""
        data = os.urandom(200_000)
        path = tmp_path / 'big.bin'
        path.write_bytes(data)

        assert hash_file(str(path), chunk_size=4096).digest == hashlib.sha256(data).hexdigest()

    def test_empty_file(self, tmp_path):
        """Test that an empty file is readable and has the empty digest."""
        path = tmp_path / 'empty'
        path.write_bytes(b'')

        assert hash_file(str(path)) == Readable(hashlib.sha256(b'').hexdigest())

    def test_missing_file_is_unreadable(self, tmp_path):
        """Test that a file deleted before reading becomes Unreadable."""
        result = hash_file(str(tmp_path / 'gone.conf'))

        assert isinstance(result, Unreadable)
        assert 'disappeared' in result.cause

    def test_permission_error_is_unreadable(self, tmp_path):
        """Test that a permission failure becomes Unreadable with its cause."""
        path = tmp_path / 'secret.conf'
        path.write_text('x')

        with patch('builtins.open', side_effect=PermissionError(13, 'Permission denied')):
            result = hash_file(str(path))

        assert isinstance(result, Unreadable)
        assert 'permission denied' in result.cause

    def test_io_error_is_unreadable(self, tmp_path):
        """Test that a generic I/O failure becomes Unreadable."""
        with patch('builtins.open', side_effect=OSError(5, 'Input/output error')):
            result = hash_file(str(tmp_path / 'x'))

        assert isinstance(result, Unreadable)
        assert 'I/O error' in result.cause

    def test_compute_digest_raises_file_access_error(self, tmp_path):
        """Test that compute_digest reports failures as FileAccessError."""
        with pytest.raises(FileAccessError) as excinfo:
            compute_digest(str(tmp_path / 'missing'))

        assert excinfo.value.path == str(tmp_path / 'missing')

    def test_unreadable_results_compare_by_cause(self):
        """Test the value semantics of the tagged result types."""
        assert Unreadable('a') == Unreadable('a')
        assert Readable('0' * 64) != Unreadable()


class TestPathHelpers:
    """Tests for ignore patterns and root containment."""

    @pytest.mark.parametrize('path, patterns, expected', [
        ('a.conf', ['*.tmp'], False),
        ('cache/x.tmp', ['*.tmp'], True),
        ('sub/dir/file.swp', ['*.swp'], True),
        ('logs/drift.log', ['logs/**'], True),
        ('logs', ['logs/**'], True),
        ('logsx/a', ['logs/**'], False),
        ('etc/nginx.conf', ['etc/*.conf'], True),
    ])
    def test_should_ignore_path(self, path, patterns, expected):
        """Test glob matching against relative paths and basenames."""
        assert should_ignore_path(path, patterns) is expected

    def test_is_within(self, tmp_path):
        """Test that containment is checked on resolved paths."""
        inside = tmp_path / 'sub' / 'a.conf'
        assert is_within(str(inside), str(tmp_path))
        assert not is_within(str(tmp_path.parent), str(tmp_path))
        assert not is_within(str(tmp_path) + 'x', str(tmp_path))

    def test_excludes_for_paths_under_root(self, tmp_path):
        """Test that only tool files under the root produce exclude patterns."""
        patterns = excludes_for(str(tmp_path), [
            str(tmp_path / 'drift.log'),
            str(tmp_path.parent / 'elsewhere'),
            None,
        ])

        assert patterns == ['drift.log', 'drift.log/**']

    def test_format_size(self):
        """Test human-readable sizes."""
        assert format_size(0) == '0 B'
        assert format_size(512) == '512.00 B'
        assert format_size(2048) == '2.00 KB'
