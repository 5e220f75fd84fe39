from datetime import datetime
from typing import Any, Dict
from src.domain.models import Bug, BugUrl


def _isoformat(value: datetime) -> str:
    # Millisecond precision with a trailing Z, the format the UI already parses.
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize_bug_url(bug_url: BugUrl) -> Dict[str, Any]:
    return {
        'id': bug_url.id,
        'url': bug_url.url,
        'bugId': bug_url.bug_id,
    }


def serialize_bug(bug: Bug) -> Dict[str, Any]:
    """Maps a Bug onto the camelCase JSON shape of the REST API."""
    return {
        'id': bug.id,
        'description': bug.description,
        'imageUrl': bug.image_url,
        'status': bug.status.value,
        'comment': bug.comment,
        'responsible': bug.responsible.value,
        'urls': [serialize_bug_url(url) for url in bug.urls],
        'createdAt': _isoformat(bug.created_at),
        'updatedAt': _isoformat(bug.updated_at),
    }
