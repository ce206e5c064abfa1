"""
Exceptions raised by controllers and their collaborators.

ValidationFailed and AuthorizationDenied are meant to escape the endpoint
and be rendered by the handlers in routekit.middleware.
"""

from typing import Any, Dict, List, Optional


class ValidationFailed(Exception):
    """Raised when request input does not satisfy the rules"""

    def __init__(self, validator: Any, response: Any = None):
        super().__init__("The given data was invalid.")
        self.validator = validator
        self.response = response

    def errors(self) -> Dict[str, List[str]]:
        return self.validator.errors().get_messages()


class AuthorizationDenied(Exception):
    """Raised by the gate when an ability check fails"""

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.message = message or "This action is unauthorized."
        self.code = code
        super().__init__(self.message)


class HandlerNotFound(LookupError):
    """Raised when the command bus has no handler for a command"""

    pass
