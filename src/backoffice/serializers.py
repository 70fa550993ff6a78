"""Row -> JSON-ready dict conversion shared by the controllers."""
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional


def jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def model_to_dict(obj, exclude: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    if obj is None:
        return None
    skip = set(exclude)
    return {
        col.key: jsonable(getattr(obj, col.key))
        for col in obj.__table__.columns
        if col.key not in skip
    }


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": (total + limit - 1) // limit if limit else 0,
    }
