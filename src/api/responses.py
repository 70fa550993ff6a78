"""JSON envelope shared by every back-office endpoint."""
from typing import Any, Dict, Optional


def ok(data: Any = None, message: Optional[str] = None, pagination: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return body


def fail(message: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "message": message, **extra}
