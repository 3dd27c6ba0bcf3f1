class ServiceError(Exception):
    """Base class for service layer errors."""

    def __init__(self, message="An internal service error occurred.", status_code=500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Malformed or missing caller input (missing ids, self-conversation)."""

    def __init__(self, message="Invalid request."):
        super().__init__(message, status_code=400)


class AuthError(ServiceError):
    def __init__(self, message="Authentication required."):
        super().__init__(message, status_code=401)


class PermissionDeniedError(ServiceError):
    def __init__(self, message="User not authorized for this action."):
        super().__init__(message, status_code=403)


class NotFoundError(ServiceError):
    def __init__(self, message="Resource not found."):
        super().__init__(message, status_code=404)


class ConversationNotFoundError(NotFoundError):
    def __init__(self, message="Conversation not found."):
        super().__init__(message)


class MessageNotFoundError(NotFoundError):
    def __init__(self, message="Message not found."):
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    def __init__(self, message="User not found."):
        super().__init__(message)


class BackendError(ServiceError):
    """Opaque storage failure; the underlying error is chained as __cause__."""

    def __init__(self, message="A database error occurred."):
        super().__init__(message, status_code=500)
