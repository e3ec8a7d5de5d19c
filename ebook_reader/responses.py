"""Response envelope shared by all routers and the error handlers."""
from fastapi.responses import JSONResponse


def ok(data: dict | None = None, message: str | None = None) -> dict:
    """Success body: {"success": true, "data": {...}}; message goes inside data."""
    payload = dict(data or {})
    if message:
        payload["message"] = message
    return {"success": True, "data": payload}


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )
