class AccessDenied(Exception):
    """Raised when an actor reads or writes outside its link or grant."""

    def __init__(self, message: str = "Not permitted"):
        super().__init__(message)
        self.message = message


class InvalidStatusTransition(Exception):
    """Raised for an appointment status change with no defined transition."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change appointment status from '{current}' to '{target}'")
        self.current = current
        self.target = target


class InvalidAttachment(Exception):
    """Raised when an uploaded file fails validation."""

    def __init__(self, errors: list[str]):
        super().__init__(", ".join(errors))
        self.errors = errors


class StorageError(Exception):
    pass
