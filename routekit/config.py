"""
Configuration

Environment-backed application settings and the controller-level
convenience configuration (failed-validation response builder and
error formatter).
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_VALIDATION_STATUS = 422

ResponseBuilder = Callable[[Any, Dict[str, Any]], Any]
ErrorFormatter = Callable[[Any], Dict[str, Any]]


@dataclass(frozen=True)
class Settings:
    """Application settings read from environment variables."""

    app_name: str = "routekit"
    log_level: str = "WARNING"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    validation_status_code: int = DEFAULT_VALIDATION_STATUS

    @classmethod
    def from_env(cls) -> "Settings":
        origins = list(DEFAULT_CORS_ORIGINS)
        extra = os.getenv("CORS_ORIGINS", "")
        if extra:
            origins.extend(o.strip() for o in extra.split(",") if o.strip())

        status_raw = os.getenv("VALIDATION_STATUS_CODE", str(DEFAULT_VALIDATION_STATUS))
        try:
            status_code = int(status_raw)
        except ValueError:
            raise ValueError(f"VALIDATION_STATUS_CODE must be an integer, got '{status_raw}'")

        return cls(
            app_name=os.getenv("APP_NAME", "routekit"),
            log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
            cors_origins=origins,
            validation_status_code=status_code,
        )


@dataclass(frozen=True)
class ConvenienceConfig:
    """
    Overrides used when a controller rejects a request.

    Both callbacks are optional. Without them a failed validation produces
    the validator's message mapping as a JSON body with ``status_code``.
    An unset ``status_code`` falls back to the application's
    ``VALIDATION_STATUS_CODE`` (see ``with_settings``), then to ``DEFAULT_VALIDATION_STATUS``.

    The config is immutable: ``build_response_using`` and
    ``format_errors_using`` return a new instance, so one config can be
    built at startup and shared by every controller.
    """

    response_builder: Optional[ResponseBuilder] = None
    error_formatter: Optional[ErrorFormatter] = None
    status_code: Optional[int] = None

    def build_response_using(self, callback: ResponseBuilder) -> "ConvenienceConfig":
        """Return a copy that builds failed-validation responses with ``callback(request, errors)``."""
        return replace(self, response_builder=callback)

    def format_errors_using(self, callback: ErrorFormatter) -> "ConvenienceConfig":
        """Return a copy that formats validation errors with ``callback(validator)``."""
        return replace(self, error_formatter=callback)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConvenienceConfig":
        return cls(status_code=settings.validation_status_code)

    def with_settings(self, settings: Settings) -> "ConvenienceConfig":
        """Return a copy whose unset status code is taken from ``settings``."""
        if self.status_code is not None:
            return self
        return replace(self, status_code=settings.validation_status_code)


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
        ],
    )
