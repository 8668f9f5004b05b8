"""Tests for input validation."""

import pytest

from core.exceptions import ValidationError
from core.validation import MAX_AUDIO_SIZE, MAX_IMAGE_SIZE, Validator, ensure_valid


@pytest.fixture
def sample_audio_file(temp_dir):
    """Create a sample audio file path for testing."""
    audio_file = temp_dir / 'test.mp3'
    audio_file.write_bytes(b'ID3')
    return str(audio_file)


class TestFileValidation:
    """Test upload file checks."""

    def test_audio_required(self):
        assert Validator.validate_audio_file(None) == ['Audio file is required']

    def test_valid_audio(self, sample_audio_file):
        assert Validator.validate_audio_file(sample_audio_file) == []

    def test_audio_format_by_extension(self, temp_dir):
        path = temp_dir / 'notes.txt'
        path.write_text('hello')
        errors = Validator.validate_audio_file(path)
        assert errors == ['Invalid audio format. Supported formats: MP3, WAV, OGG, AAC, FLAC']

    def test_declared_mime_type_wins(self, temp_dir):
        path = temp_dir / 'upload.bin'
        path.write_bytes(b'fLaC')
        assert Validator.validate_audio_file(path, mime_type='audio/flac') == []

    def test_audio_too_large(self, temp_dir):
        path = temp_dir / 'huge.wav'
        with open(path, 'wb') as f:
            f.truncate(MAX_AUDIO_SIZE + 1)
        assert Validator.validate_audio_file(path) == ['Audio file size must be less than 50MB']

    def test_audio_missing_file(self, temp_dir):
        errors = Validator.validate_audio_file(temp_dir / 'gone.mp3')
        assert len(errors) == 1
        assert 'not found' in errors[0]

    def test_image_optional(self):
        assert Validator.validate_image_file(None) == []

    def test_image_checks(self, temp_dir):
        big = temp_dir / 'cover.png'
        with open(big, 'wb') as f:
            f.truncate(MAX_IMAGE_SIZE + 1)
        assert Validator.validate_image_file(big) == ['Image file size must be less than 5MB']

        bmp = temp_dir / 'cover.bmp'
        bmp.write_bytes(b'BM')
        assert Validator.validate_image_file(bmp) == [
            'Invalid image format. Supported formats: JPEG, PNG, WebP, GIF'
        ]


class TestDataValidation:
    """Test form data checks."""

    def test_song_requires_title_and_artist(self):
        errors = Validator.validate_song_data({'title': '  ', 'artist': ''})
        assert errors == ['Song title is required', 'Artist name is required']

    def test_song_genre(self):
        assert Validator.validate_song_data({'title': 't', 'artist': 'a', 'genre': 'Jazz'}) == []
        assert Validator.validate_song_data({'title': 't', 'artist': 'a', 'genre': ''}) == []
        errors = Validator.validate_song_data({'title': 't', 'artist': 'a', 'genre': 'Polka'})
        assert errors == ['Unknown genre: Polka']

    def test_song_lengths(self):
        errors = Validator.validate_song_data({'title': 't' * 101, 'artist': 'a', 'album': 'x' * 101})
        assert errors == [
            'Song title must be less than 100 characters',
            'Album name must be less than 100 characters',
        ]

    def test_playlist(self):
        assert Validator.validate_playlist_data({'name': 'Road trip'}) == []
        errors = Validator.validate_playlist_data({'name': '', 'description': 'd' * 501})
        assert errors == [
            'Playlist name is required',
            'Playlist description must be less than 500 characters',
        ]

    def test_search_query(self):
        assert Validator.validate_search_query('rock') == []
        assert Validator.validate_search_query('') == ['Search query is required']
        assert Validator.validate_search_query('a') == ['Search query must be at least 2 characters']
        assert Validator.validate_search_query('q' * 101) == ['Search query must be less than 100 characters']

    def test_sanitize_text(self):
        assert Validator.sanitize_text('  My\x00 Song\x07  ') == 'My Song'
        assert Validator.sanitize_text(None) == ''
        assert len(Validator.sanitize_text('x' * 300)) == 100

    def test_ensure_valid(self):
        ensure_valid([])
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(['Song title is required'])
        assert exc_info.value.errors == ['Song title is required']
