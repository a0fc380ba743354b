"""Error types raised by the Pulse core and its entity stores."""


class PulseError(Exception):
    """Base class for all Pulse errors."""


class ValidationError(PulseError):
    """A supplied value was rejected before anything was modified."""


class InvalidStatus(ValidationError):
    """An unrecognized status value was supplied."""

    def __init__(self, status, allowed):
        self.status = status
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invalid status {status!r}; expected one of: {', '.join(self.allowed)}"
        )


class InvalidField(ValidationError):
    """A field value failed validation (e.g. an empty title)."""

    def __init__(self, field, message):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class NotFoundError(PulseError):
    """An entity lookup failed. Raised by stores, never by the core."""

    def __init__(self, entity, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")
