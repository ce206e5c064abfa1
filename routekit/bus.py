"""
Command Bus

Routes a command object to its handler and returns the handler's result.
Handlers are mapped per command class; a command without a mapping
handles itself through its own handle() method. Pipes wrap every handler
call in registration order.
"""

import logging
from functools import reduce
from typing import Any, Callable, Dict, List, Optional

from routekit.errors import HandlerNotFound

logger = logging.getLogger(__name__)

Pipe = Callable[[Any, Callable[[Any], Any]], Any]


class Dispatcher:
    def __init__(self, handlers: Optional[Dict[type, Any]] = None):
        self._handlers: Dict[type, Any] = dict(handlers or {})
        self._pipes: List[Pipe] = []

    def map(self, handlers: Dict[type, Any]) -> "Dispatcher":
        """Map command classes to handlers (callables or objects with handle())."""
        self._handlers.update(handlers)
        return self

    def pipe_through(self, pipes: List[Pipe]) -> "Dispatcher":
        """Replace the pipes every command passes through before its handler."""
        self._pipes = list(pipes)
        return self

    def has_handler(self, command: Any) -> bool:
        return self.get_command_handler(command) is not None

    def get_command_handler(self, command: Any) -> Optional[Any]:
        for cls in type(command).__mro__:
            if cls in self._handlers:
                return self._handlers[cls]
        return None

    def dispatch(self, command: Any) -> Any:
        return self.dispatch_now(command)

    def dispatch_now(self, command: Any) -> Any:
        """
        Run a command through the pipes and its handler.

        Raises:
            HandlerNotFound: If no handler is mapped and the command has no handle()
        """
        target = self._resolve_target(command)
        logger.debug(f"Dispatching {type(command).__name__}")

        def through(next_call: Callable[[Any], Any], pipe: Pipe) -> Callable[[Any], Any]:
            return lambda cmd: pipe(cmd, next_call)

        pipeline = reduce(through, reversed(self._pipes), target)
        return pipeline(command)

    def _resolve_target(self, command: Any) -> Callable[[Any], Any]:
        handler = self.get_command_handler(command)
        if handler is not None:
            if isinstance(handler, type):
                handler = handler()
            if callable(getattr(handler, "handle", None)):
                return handler.handle
            if callable(handler):
                return handler
            raise HandlerNotFound(f"Handler for {type(command).__name__} is not callable")

        if callable(getattr(command, "handle", None)):
            return lambda cmd: cmd.handle()

        raise HandlerNotFound(f"No handler registered for command {type(command).__name__}")
