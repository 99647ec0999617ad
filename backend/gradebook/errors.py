"""Domain errors raised by the routers and mapped to JSON in ``main``."""


class ApiError(Exception):
	status_code = 500

	def __init__(self, message: str, status_code: int | None = None) -> None:
		super().__init__(message)
		self.message = message
		if status_code is not None:
			self.status_code = status_code


class BadRequestError(ApiError):
	status_code = 400


class ForbiddenError(ApiError):
	status_code = 403

	def __init__(self, message: str = "Forbidden") -> None:
		super().__init__(message)


class NotFoundError(ApiError):
	status_code = 404

	def __init__(self, message: str = "Not found") -> None:
		super().__init__(message)


class ConflictError(ApiError):
	status_code = 409


class PayloadTooLargeError(ApiError):
	status_code = 413
