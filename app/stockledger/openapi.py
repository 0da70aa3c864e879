from copy import deepcopy

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi


VALIDATION_ERROR_REF = "#/components/schemas/ValidationErrorResponse"
NOT_FOUND_ERROR_REF = "#/components/schemas/NotFoundErrorResponse"
CONFLICT_ERROR_REF = "#/components/schemas/ConflictErrorResponse"

TAG_METADATA = [
    {"name": "Batches", "description": "Received lots of a product and their stock records."},
    {"name": "Locations", "description": "Fixed-capacity storage slots. A slot holds at most one stock record."},
    {
        "name": "Stock Records",
        "description": "Quantity state per batch: on hand, on shelf, reserved. Changed only through movements.",
    },
    {
        "name": "Movements",
        "description": "Append-only movement ledger. Deleting a movement applies a compensating movement.",
    },
    {"name": "Bulk Transfers", "description": "Multi-batch warehouse/shelf transfers with per-item results."},
    {"name": "ops", "description": "Health, readiness and metrics."},
]

_CONFLICT_EXAMPLES = {
    "/api/movements": ("INSUFFICIENT_STOCK", "Insufficient stock"),
    "/api/stock-records/{stock_record_id}/location": ("LOCATION_OCCUPIED", "Location is already assigned to another stock record"),
    "/api/stock-records/{stock_record_id}/move": ("LOCATION_CAPACITY_EXCEEDED", "Location capacity exceeded"),
    "/api/movements/{movement_id}": ("MOVEMENT_ALREADY_REVERSED", "Movement has already been reversed"),
}

_ERROR_PROPS = {
    "code": {"type": "string"},
    "message": {"type": "string"},
    "details": {"type": "object", "nullable": True, "additionalProperties": True},
    "trace_id": {"type": "string", "nullable": True, "example": "trace-123"},
}

ERROR_RESPONSE_SCHEMAS = {
    "NotFoundErrorResponse": {
        "type": "object",
        "required": ["code", "message"],
        "properties": {
            **_ERROR_PROPS,
            "code": {"type": "string", "example": "NOT_FOUND"},
            "message": {"type": "string", "example": "Resource not found"},
        },
    },
    "ConflictErrorResponse": {
        "type": "object",
        "required": ["code", "message"],
        "properties": {
            **_ERROR_PROPS,
            "code": {"type": "string", "example": "INSUFFICIENT_STOCK"},
            "message": {"type": "string", "example": "Insufficient stock"},
        },
    },
    "ValidationErrorResponse": {
        "type": "object",
        "required": ["code", "message"],
        "properties": {
            **_ERROR_PROPS,
            "code": {"type": "string", "example": "VALIDATION_ERROR"},
            "message": {"type": "string", "example": "Validation error"},
        },
        "example": {
            "code": "INVALID_QUANTITY",
            "message": "Quantity is invalid for this movement type",
            "details": {"movement_type": "in", "quantity": 0, "message": "quantity must not be zero"},
            "trace_id": "trace-123",
        },
    },
}

_TAG_PREFIXES = (
    ("/api/batches", "Batches"),
    ("/api/locations", "Locations"),
    ("/api/stock-records", "Stock Records"),
    ("/api/movements", "Movements"),
    ("/api/bulk-transfers", "Bulk Transfers"),
)


def _operation_id(method: str, path: str) -> str:
    normalized = path.strip("/").replace("/", "_").replace("-", "_").replace("{", "").replace("}", "")
    return f"{method}_{normalized}"


def _assign_tag(path: str) -> str | None:
    for prefix, tag in _TAG_PREFIXES:
        if path.startswith(prefix):
            return tag
    return None


def _apply_error_responses(path: str, method: str, operation: dict) -> None:
    if not path.startswith("/api/"):
        return
    responses = operation.setdefault("responses", {})
    responses["422"] = {
        "description": "Validation error",
        "content": {"application/json": {"schema": {"$ref": VALIDATION_ERROR_REF}}},
    }
    if "{" in path:
        responses["404"] = {
            "description": "Resource not found",
            "content": {"application/json": {"schema": {"$ref": NOT_FOUND_ERROR_REF}}},
        }
    if method in {"post", "put", "patch", "delete"}:
        code, message = _CONFLICT_EXAMPLES.get(path, ("CONFLICT", "Resource conflict"))
        responses["409"] = {
            "description": "Ledger rule violated",
            "content": {
                "application/json": {
                    "schema": {"$ref": CONFLICT_ERROR_REF},
                    "example": {"code": code, "message": message, "details": None, "trace_id": "trace-123"},
                }
            },
        }


def harden_openapi_schema(app: FastAPI):
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(title=app.title, version="1.0.0", routes=app.routes)
    schema["tags"] = TAG_METADATA
    schema.setdefault("components", {}).setdefault("schemas", {}).update(deepcopy(ERROR_RESPONSE_SCHEMAS))

    for path, path_item in schema.get("paths", {}).items():
        for method, operation in path_item.items():
            if method not in {"get", "post", "put", "patch", "delete"}:
                continue
            tag = _assign_tag(path)
            if tag:
                operation["tags"] = [tag]
            operation["operationId"] = _operation_id(method, path)
            _apply_error_responses(path, method, operation)

    app.openapi_schema = schema
    return app.openapi_schema
