# lms_analytics/utils/serialization.py
import enum
import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def entity_to_dict(entity: Optional[Any]) -> Optional[Dict[str, Any]]:
    """Column values of a mapped entity as JSON-friendly primitives"""
    if entity is None:
        return None
    return {column.key: _plain(getattr(entity, column.key)) for column in entity.__table__.columns}
