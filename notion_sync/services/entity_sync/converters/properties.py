"""Builders for Notion page property values.

Every builder returns the value Notion expects for one property. Relation
builders return None when the related page is unknown so that merge-mode
updates leave the existing relation untouched.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Notion rejects rich text objects longer than this
MAX_TEXT_LENGTH = 2000


def stripe_id(value: Any) -> Optional[str]:
    """Return the ID of an expandable Stripe field.

    Stripe returns either the bare ID or the expanded object depending on the
    `expand` parameters of the request.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get('id')
    return None


def get_path(record: Optional[Dict[str, Any]], path: str) -> Any:
    """Follow a dotted path through nested dicts and lists.

    Numeric segments index into lists, `payments.data.0.payment` style.
    """
    current: Any = record
    for segment in path.split('.'):
        if current is None:
            return None
        if isinstance(current, list):
            if not segment.isdigit():
                return None
            index = int(segment)
            current = current[index] if index < len(current) else None
        elif isinstance(current, dict):
            current = current.get(segment)
        else:
            return None
    return current


def list_data(record: Optional[Dict[str, Any]], path: str) -> List[Dict[str, Any]]:
    """Return the `data` array of an embedded Stripe list, [] when missing."""
    value = get_path(record, path)
    if isinstance(value, dict):
        value = value.get('data')
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def title(value: Optional[str]) -> Dict[str, Any]:
    return {'title': _text_chunks(value)}


def rich_text(value: Any) -> Dict[str, Any]:
    return {'rich_text': _text_chunks(value)}


def number(value: Any) -> Dict[str, Any]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return {'number': None}
    return {'number': value}


def amount(value: Any) -> Dict[str, Any]:
    """Stripe amounts are in the smallest currency unit, Notion shows major units."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return {'number': None}
    return {'number': value / 100}


def checkbox(value: Any) -> Dict[str, Any]:
    return {'checkbox': bool(value)}


def select(value: Optional[str]) -> Dict[str, Any]:
    if not value:
        return {'select': None}
    # Commas are not allowed in select option names
    return {'select': {'name': str(value).replace(',', ' ')[:100]}}


def date(timestamp: Optional[int]) -> Dict[str, Any]:
    """Convert a Unix timestamp into a Notion date property."""
    if not timestamp:
        return {'date': None}
    start = datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
    return {'date': {'start': start}}


def email(value: Optional[str]) -> Dict[str, Any]:
    return {'email': value or None}


def phone(value: Optional[str]) -> Dict[str, Any]:
    return {'phone_number': value or None}


def url(value: Optional[str]) -> Dict[str, Any]:
    return {'url': value or None}


def relation(page_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not page_id:
        return None
    return {'relation': [{'id': page_id}]}


def metadata(value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return rich_text(json.dumps(value or {}, sort_keys=True))


def currency(value: Optional[str]) -> Dict[str, Any]:
    return rich_text(value.upper() if value else '')


def _text_chunks(value: Any) -> List[Dict[str, Any]]:
    if value is None or value == '':
        return []
    content = str(value)
    return [
        {'type': 'text', 'text': {'content': content[i:i + MAX_TEXT_LENGTH]}}
        for i in range(0, len(content), MAX_TEXT_LENGTH)
    ]
