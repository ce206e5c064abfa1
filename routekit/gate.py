"""
Authorization Gate

Decides whether a user may perform an ability. Abilities are plain
callbacks registered with define(), or methods on a policy object
registered for a model class. before() callbacks run ahead of both and
may short-circuit the decision.

Every callback receives (user, *arguments) and returns a bool or an
AuthorizationResponse.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from routekit.errors import AuthorizationDenied

logger = logging.getLogger(__name__)

UserResolver = Callable[[], Any]


@dataclass(frozen=True)
class AuthorizationResponse:
    """Outcome of an ability check"""

    allowed: bool
    message: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def allow(cls, message: Optional[str] = None, code: Optional[str] = None) -> "AuthorizationResponse":
        return cls(True, message, code)

    @classmethod
    def deny(cls, message: Optional[str] = None, code: Optional[str] = None) -> "AuthorizationResponse":
        return cls(False, message, code)

    def denied(self) -> bool:
        return not self.allowed

    def authorize(self) -> "AuthorizationResponse":
        """
        Return self when allowed.

        Raises:
            AuthorizationDenied: If the response is a denial
        """
        if self.denied():
            raise AuthorizationDenied(self.message, self.code)
        return self


def _as_response(result: Any) -> AuthorizationResponse:
    if isinstance(result, AuthorizationResponse):
        return result
    return AuthorizationResponse.allow() if result else AuthorizationResponse.deny()


def _as_arguments(arguments: Any) -> List[Any]:
    if arguments is None:
        return []
    if isinstance(arguments, (list, tuple)):
        return list(arguments)
    return [arguments]


class Gate:
    def __init__(
        self,
        user_resolver: Optional[UserResolver] = None,
        abilities: Optional[Dict[str, Callable[..., Any]]] = None,
        policies: Optional[Dict[type, Any]] = None,
        before_callbacks: Optional[List[Callable[..., Any]]] = None,
    ):
        self._user_resolver = user_resolver or (lambda: None)
        self._abilities: Dict[str, Callable[..., Any]] = dict(abilities or {})
        self._policies: Dict[type, Any] = dict(policies or {})
        self._before: List[Callable[..., Any]] = list(before_callbacks or [])

    # ============================================================================
    # Registration
    # ============================================================================

    def define(self, ability: str, callback: Callable[..., Any]) -> "Gate":
        self._abilities[ability] = callback
        return self

    def policy(self, model_cls: type, policy: Any) -> "Gate":
        self._policies[model_cls] = policy
        return self

    def before(self, callback: Callable[..., Any]) -> "Gate":
        """Register a callback run as callback(user, ability, arguments) before every check."""
        self._before.append(callback)
        return self

    def has(self, ability: str) -> bool:
        return ability in self._abilities

    def get_policy_for(self, target: Any) -> Optional[Any]:
        cls = target if isinstance(target, type) else type(target)
        for model_cls in cls.__mro__:
            if model_cls in self._policies:
                return self._policies[model_cls]
        return None

    # ============================================================================
    # Checks
    # ============================================================================

    def inspect(self, ability: str, arguments: Any = None) -> AuthorizationResponse:
        """Evaluate an ability for the resolved user without raising."""
        arguments = _as_arguments(arguments)
        user = self._user_resolver()

        for callback in self._before:
            result = callback(user, ability, arguments)
            if result is not None:
                return _as_response(result)

        if user is None:
            logger.debug(f"Denying '{ability}' for guest")
            return AuthorizationResponse.deny()

        if arguments:
            policy = self.get_policy_for(arguments[0])
            if policy is not None and callable(getattr(policy, ability, None)):
                return _as_response(getattr(policy, ability)(user, *arguments))

        callback = self._abilities.get(ability)
        if callback is not None:
            return _as_response(callback(user, *arguments))

        return AuthorizationResponse.deny()

    def allows(self, ability: str, arguments: Any = None) -> bool:
        return self.inspect(ability, arguments).allowed

    def denies(self, ability: str, arguments: Any = None) -> bool:
        return not self.allows(ability, arguments)

    def check(self, abilities: Any, arguments: Any = None) -> bool:
        """True only if every ability is allowed."""
        if isinstance(abilities, str):
            abilities = [abilities]
        return all(self.allows(ability, arguments) for ability in abilities)

    def authorize(self, ability: str, arguments: Any = None) -> AuthorizationResponse:
        """
        Check an ability and return the allowing response.

        Raises:
            AuthorizationDenied: If the ability is denied
        """
        response = self.inspect(ability, arguments)
        if response.denied():
            logger.info(f"Authorization denied for ability '{ability}'")
        return response.authorize()

    def for_user(self, user: Any) -> "Gate":
        """Return a gate with the same rules that resolves to ``user``."""
        return Gate(
            user_resolver=lambda: user,
            abilities=self._abilities,
            policies=self._policies,
            before_callbacks=self._before,
        )
