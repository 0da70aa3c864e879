from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    INVALID_QUANTITY = ErrorDefinition(
        "INVALID_QUANTITY",
        "Quantity is invalid for this movement type",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INSUFFICIENT_STOCK = ErrorDefinition(
        "INSUFFICIENT_STOCK",
        "Insufficient stock",
        status.HTTP_409_CONFLICT,
    )
    MISSING_REASON = ErrorDefinition(
        "MISSING_REASON",
        "A reason is required for this movement",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    LOCATION_INACTIVE = ErrorDefinition(
        "LOCATION_INACTIVE",
        "Location is inactive",
        status.HTTP_409_CONFLICT,
    )
    LOCATION_OCCUPIED = ErrorDefinition(
        "LOCATION_OCCUPIED",
        "Location is already assigned to another stock record",
        status.HTTP_409_CONFLICT,
    )
    LOCATION_CAPACITY_EXCEEDED = ErrorDefinition(
        "LOCATION_CAPACITY_EXCEEDED",
        "Location capacity exceeded",
        status.HTTP_409_CONFLICT,
    )
    INVALID_LOCATION_CHANGE = ErrorDefinition(
        "INVALID_LOCATION_CHANGE",
        "Location change is not valid for the current assignment",
        status.HTTP_409_CONFLICT,
    )
    LOCATION_NOT_EMPTY = ErrorDefinition(
        "LOCATION_NOT_EMPTY",
        "Location still holds stock",
        status.HTTP_409_CONFLICT,
    )
    DUPLICATE_LOCATION = ErrorDefinition(
        "DUPLICATE_LOCATION",
        "Location name already exists",
        status.HTTP_409_CONFLICT,
    )
    NOT_FOUND = ErrorDefinition(
        "NOT_FOUND",
        "Resource not found",
        status.HTTP_404_NOT_FOUND,
    )
    EXPIRED_BATCH = ErrorDefinition(
        "EXPIRED_BATCH",
        "Expired batches cannot be transferred",
        status.HTTP_409_CONFLICT,
    )
    BATCH_MISMATCH = ErrorDefinition(
        "BATCH_MISMATCH",
        "Batch does not match the stock record",
        status.HTTP_400_BAD_REQUEST,
    )
    DUPLICATE_BATCH_CODE = ErrorDefinition(
        "DUPLICATE_BATCH_CODE",
        "Batch code already exists",
        status.HTTP_409_CONFLICT,
    )
    STOCK_NOT_EMPTY = ErrorDefinition(
        "STOCK_NOT_EMPTY",
        "Stock record still holds quantity or reservations",
        status.HTTP_409_CONFLICT,
    )
    MOVEMENT_ALREADY_REVERSED = ErrorDefinition(
        "MOVEMENT_ALREADY_REVERSED",
        "Movement has already been reversed",
        status.HTTP_409_CONFLICT,
    )
    MOVEMENT_NOT_REVERSIBLE = ErrorDefinition(
        "MOVEMENT_NOT_REVERSIBLE",
        "Movement cannot be reversed",
        status.HTTP_409_CONFLICT,
    )
    CONCURRENT_MODIFICATION = ErrorDefinition(
        "CONCURRENT_MODIFICATION",
        "Record was modified concurrently, retry the request",
        status.HTTP_409_CONFLICT,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    SEQUENCE_EXHAUSTED = ErrorDefinition(
        "SEQUENCE_EXHAUSTED",
        "Yearly number sequence is exhausted",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)

    @property
    def code(self) -> str:
        return self.error.code


def not_found(entity: str, entity_id: object) -> AppError:
    return AppError(
        ErrorCatalog.NOT_FOUND,
        details={"message": f"{entity} not found", "entity": entity, "id": str(entity_id)},
    )
