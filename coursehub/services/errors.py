class ServiceError(Exception):
    """Base class for business-rule failures raised by the service layer."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = 404


class PreconditionError(ServiceError):
    status_code = 400


class ConflictError(ServiceError):
    status_code = 409
