"""The ``{success, data?, error?, pagination?}`` envelope shared by every route."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


def success(data: Any = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def error_response(
    status_code: int,
    message: str,
    validation_errors: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": message}
    if validation_errors:
        content["validationErrors"] = validation_errors
    return JSONResponse(status_code=status_code, content=content)


__all__ = ["error_response", "success"]
