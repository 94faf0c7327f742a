"""
Typed errors raised by the back-office services.

Services never raise HTTPException; the API layer renders these using the
``status_code`` and ``code`` carried by each class.
"""


class BackofficeError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(BackofficeError):
    """Malformed or missing input, detected before any mutation."""

    status_code = 400
    code = "validation_error"


class NotFoundError(BackofficeError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(BackofficeError):
    """The requested transition is not legal for the current status."""

    status_code = 409
    code = "invalid_state"


class InsufficientStockError(BackofficeError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, product_name: str, available: int, needed: int):
        super().__init__(f'Insufficient stock for "{product_name}": available {available}, needed {needed}')
        self.product_name = product_name
        self.available = available
        self.needed = needed

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(product=self.product_name, available=self.available, needed=self.needed)
        return data


class ReferentialConflictError(BackofficeError):
    """Delete blocked by dependent records."""

    status_code = 409
    code = "referential_conflict"


class InternalError(BackofficeError):
    status_code = 500
    code = "internal_error"
