"""
routekit

Controller convenience methods for FastAPI: validate request input,
authorize abilities through a gate, and dispatch commands to a bus.
"""

from routekit.app import create_app
from routekit.bus import Dispatcher
from routekit.config import ConvenienceConfig, Settings, configure_logging
from routekit.controller import Controller, ProvidesConvenienceMethods, resolve_controller
from routekit.errors import AuthorizationDenied, HandlerNotFound, ValidationFailed
from routekit.gate import AuthorizationResponse, Gate
from routekit.inputs import RequestInput, request_input
from routekit.middleware import register_exception_handlers
from routekit.validation import MessageBag, ValidationFactory, Validator

__all__ = [
    "AuthorizationDenied",
    "AuthorizationResponse",
    "Controller",
    "ConvenienceConfig",
    "Dispatcher",
    "Gate",
    "HandlerNotFound",
    "MessageBag",
    "ProvidesConvenienceMethods",
    "RequestInput",
    "Settings",
    "ValidationFactory",
    "ValidationFailed",
    "Validator",
    "configure_logging",
    "create_app",
    "register_exception_handlers",
    "request_input",
    "resolve_controller",
]
