"""Share links for songs."""

from typing import Dict
from urllib.parse import quote

from core.models import Track


def share_url(track: Track, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/song/{quote(track.id, safe='')}"


def build_share_payload(track: Track, base_url: str) -> Dict[str, str]:
    """Title/text/url triple for a system share sheet or the clipboard."""
    return {
        'title': track.title,
        'text': f'Check out "{track.title}" by {track.artist}',
        'url': share_url(track, base_url),
    }
