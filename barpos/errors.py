"""Domain failures raised by the services and rendered by the HTTP layer.

Each error carries the HTTP status it maps to and a human-readable ``detail``;
``extra`` fields are merged into the JSON body (e.g. ``available`` for
:class:`InsufficientStock`).
"""


class BarPosError(Exception):
    status_code = 400

    def __init__(self, detail: str, **extra):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra


class NotFound(BarPosError):
    status_code = 404


class InvalidState(BarPosError):
    status_code = 400


class InvalidIndex(BarPosError):
    status_code = 400


class Conflict(BarPosError):
    status_code = 409


class NoActiveShift(BarPosError):
    status_code = 409


class InsufficientStock(BarPosError):
    status_code = 409

    def __init__(self, product_name: str, product_id: str, available, requested, unit: str):
        self.product_name = product_name
        self.product_id = product_id
        self.available = available
        self.requested = requested
        self.unit = unit
        super().__init__(
            f"Insufficient stock for '{product_name}': requested {requested} {unit}, available {available} {unit}",
            product_id=product_id,
            available=float(available),
            requested=float(requested),
        )
