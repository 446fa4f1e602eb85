from typing import Any, Dict, Optional

from pydantic import BaseModel


def dump(model: BaseModel, **kwargs) -> Dict[str, Any]:
    """Serialize a schema the way clients expect it: camelCase, JSON-ready."""
    return model.model_dump(mode="json", by_alias=True, **kwargs)


def success(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def failure(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message}
