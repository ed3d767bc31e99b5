# exceptions.py - errors raised by the kernels


class ShapeMismatch(ValueError):
    """Declared dimensions or buffer counts do not agree."""


class CapacityExceeded(ValueError):
    """The result needs more slots than the caller's output buffers declare."""

    def __init__(self, buffer_name, needed, capacity):
        self.buffer_name = buffer_name
        self.needed = needed
        self.capacity = capacity
        super().__init__(f"{buffer_name}: needs {needed} slots, capacity is {capacity}")


class MalformedInput(ValueError):
    """A CCS triple breaks a structural invariant."""


class TaskStateError(RuntimeError):
    """Lifecycle methods were called out of order."""
