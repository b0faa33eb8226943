"""Exception hierarchy shared by the simulator, the stores and the CLI."""

from __future__ import annotations


class SimulationError(Exception):
    """Raised when simulation encounters an unrecoverable error."""
    pass


class DataLoadError(SimulationError):
    """Raised when required data files cannot be loaded."""
    pass


class ConfigValidationError(SimulationError):
    """Raised when configuration values are invalid."""
    pass


class ValidationError(SimulationError):
    """Raised when a record is constructed with out-of-range values."""
    pass


class StoreError(SimulationError):
    """Raised when a read or write against the data store fails."""
    pass


class DuplicateOrderError(StoreError):
    """Raised by a conditional put when the order id already exists."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order already exists: {order_id}")
        self.order_id = order_id


class OrderNotFoundError(StoreError):
    """Raised when updating an order that is not in the store."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id
