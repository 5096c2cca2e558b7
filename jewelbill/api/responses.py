from typing import Any, Dict, List

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jewelbill.services.exceptions import ServiceError


def error_response(message: str, status_code: int = 400, code: str | None = None, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": code, **extra},
    )


def service_error_response(exc: ServiceError) -> JSONResponse:
    return error_response(str(exc), exc.status_code, exc.code, **exc.extra())


def validation_field_errors(exc: RequestValidationError) -> Dict[str, List[str]]:
    """Group validation messages by dotted field path, e.g. ``items.0.rate``."""

    fields: Dict[str, List[str]] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(location) or "body"
        fields.setdefault(field, []).append(str(error.get("msg", "Invalid value")))
    return fields
