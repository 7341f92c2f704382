"""Exception types raised by the production counter."""


class ProductionCounterError(Exception):
    """Base class for all production counter errors."""
    pass


class ParseError(ProductionCounterError):
    """A camera frame could not be decoded."""
    pass


class CameraConnectionError(ProductionCounterError):
    """Connecting to the camera failed."""
    pass


class PersistenceError(ProductionCounterError):
    """A read or write against the persistence gateway failed."""
    pass


class PlanError(ProductionCounterError):
    """Base class for production plan errors."""
    pass


class PlanStateError(PlanError):
    """The requested transition is not allowed from the plan's current status."""
    pass


class PlanNotFoundError(PlanError):
    """No plan with the given id is known to the queue."""
    pass


class PlanValidationError(PlanError):
    """A new plan was requested with invalid fields."""
    pass
