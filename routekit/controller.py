"""
Controller Convenience Methods

ProvidesConvenienceMethods gives controllers three shortcuts, each a
direct hand-off to an injected collaborator:

- validate(): run the validation factory and raise ValidationFailed with a
  ready-to-send response when the input is rejected
- authorize() / authorize_for_user(): ask the gate, which raises
  AuthorizationDenied on refusal
- dispatch(): hand a command to the bus and return its result

Collaborators and the failed-validation overrides are passed to the
constructor; nothing is looked up from global state.
"""

import logging
import sys
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple, Type, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse

from routekit.config import DEFAULT_VALIDATION_STATUS, ConvenienceConfig
from routekit.errors import ValidationFailed

logger = logging.getLogger(__name__)


# ============================================================================
# Collaborator contracts
# ============================================================================


class ValidatorContract(Protocol):
    def fails(self) -> bool: ...

    def errors(self) -> Any: ...


class ValidationFactoryContract(Protocol):
    def make(
        self,
        data: Mapping[str, Any],
        rules: Mapping[str, Any],
        messages: Mapping[str, str],
        attributes: Mapping[str, str],
    ) -> ValidatorContract: ...


class GateContract(Protocol):
    def authorize(self, ability: str, arguments: Any = None) -> Any: ...

    def for_user(self, user: Any) -> "GateContract": ...


class DispatcherContract(Protocol):
    def dispatch(self, command: Any) -> Any: ...

    def dispatch_now(self, command: Any) -> Any: ...


class InputContract(Protocol):
    def all(self) -> Dict[str, Any]: ...


# ============================================================================
# Mixin
# ============================================================================


class ProvidesConvenienceMethods:
    validation_factory: ValidationFactoryContract
    gate: GateContract
    dispatcher: DispatcherContract
    config: ConvenienceConfig

    def validate(
        self,
        request: InputContract,
        rules: Mapping[str, Any],
        messages: Optional[Mapping[str, str]] = None,
        custom_attributes: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Validate the request input against the rules.

        Raises:
            ValidationFailed: Carrying the validator and the response to send
        """
        validator = self.get_validation_factory().make(request.all(), rules, messages or {}, custom_attributes or {})

        if validator.fails():
            self.throw_validation_exception(request, validator)

    def throw_validation_exception(self, request: InputContract, validator: ValidatorContract) -> None:
        logger.info(f"Validation failed for fields: {', '.join(validator.errors().get_messages())}")
        errors = self.format_validation_errors(validator)
        raise ValidationFailed(validator, self.build_failed_validation_response(request, errors))

    def build_failed_validation_response(self, request: InputContract, errors: Dict[str, Any]) -> Any:
        if self.config.response_builder is not None:
            return self.config.response_builder(request, errors)

        return JSONResponse(errors, status_code=self.config.status_code or DEFAULT_VALIDATION_STATUS)

    def format_validation_errors(self, validator: ValidatorContract) -> Dict[str, Any]:
        if self.config.error_formatter is not None:
            return self.config.error_formatter(validator)

        return validator.errors().get_messages()

    def authorize(self, ability: Any, arguments: Any = None) -> Any:
        """
        Authorize an ability for the current user.

        When ``ability`` is not a string it becomes the only argument and the
        ability name is taken from the calling method, so ``self.authorize(post)``
        inside ``update`` checks "update".

        Raises:
            AuthorizationDenied: From the gate, when the ability is denied
        """
        ability, arguments = self._parse_ability_and_arguments(ability, arguments)

        return self.gate.authorize(ability, arguments)

    def authorize_for_user(self, user: Any, ability: Any, arguments: Any = None) -> Any:
        """Authorize an ability for an explicit user. Same name inference as authorize()."""
        ability, arguments = self._parse_ability_and_arguments(ability, arguments)

        return self.gate.for_user(user).authorize(ability, arguments)

    def _parse_ability_and_arguments(self, ability: Any, arguments: Any) -> Tuple[str, Any]:
        if isinstance(ability, str):
            return ability, [] if arguments is None else arguments

        # 0: this method, 1: authorize/authorize_for_user, 2: the controller method
        caller = sys._getframe(2).f_code.co_name
        return caller, [ability]

    def dispatch(self, job: Any) -> Any:
        return self.dispatcher.dispatch(job)

    def dispatch_now(self, job: Any) -> Any:
        return self.dispatcher.dispatch_now(job)

    def get_validation_factory(self) -> ValidationFactoryContract:
        return self.validation_factory


class Controller(ProvidesConvenienceMethods):
    def __init__(
        self,
        validation_factory: ValidationFactoryContract,
        gate: GateContract,
        dispatcher: DispatcherContract,
        config: Optional[ConvenienceConfig] = None,
    ):
        self.validation_factory = validation_factory
        self.gate = gate
        self.dispatcher = dispatcher
        self.config = config or ConvenienceConfig()


ControllerT = TypeVar("ControllerT", bound=Controller)


def resolve_controller(controller_cls: Type[ControllerT]) -> Callable[[Request], ControllerT]:
    """
    Build a FastAPI dependency that constructs ``controller_cls`` per request.

    Services come from ``request.app.state`` (see routekit.app.create_app).
    If an upstream dependency stored the authenticated user on
    ``request.state.user`` the gate is scoped to that user; otherwise the
    application gate, with its own user resolver, is used as is.
    """

    def _resolve(request: Request) -> ControllerT:
        state = request.app.state
        gate = state.gate
        if hasattr(request.state, "user"):
            gate = gate.for_user(request.state.user)
        return controller_cls(
            validation_factory=state.validation_factory,
            gate=gate,
            dispatcher=state.dispatcher,
            config=state.convenience_config,
        )

    return _resolve


__all__ = [
    "Controller",
    "DispatcherContract",
    "GateContract",
    "InputContract",
    "ProvidesConvenienceMethods",
    "ValidationFactoryContract",
    "ValidatorContract",
    "resolve_controller",
]
