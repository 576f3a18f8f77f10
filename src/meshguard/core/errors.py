"""
Error types for meshguard.

Every error raised by the detection and policy pipeline derives from
:class:`MeshGuardError`. The API maps an error to a response with
``http_status`` and :meth:`MeshGuardError.to_dict`; CLI commands map it to a
process exit code with ``exit_code``.

Exit codes:
- 0: success
- 10: bad settings or baseline file
- 11: cluster unreachable or refused the manifest
- 12: malformed manifest or input
- 13: unknown draft, anomaly or service
- 14: draft not in a state that allows the transition
- 15: webhook delivery failed
- 130: interrupted
- 127: anything else
"""

from __future__ import annotations

import functools
import sys
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    SUCCESS = 0
    CONFIG_ERROR = 10
    CLUSTER_ERROR = 11
    VALIDATION_ERROR = 12
    NOT_FOUND = 13
    INVALID_STATE = 14
    DELIVERY_ERROR = 15
    UNKNOWN_ERROR = 127
    INTERRUPTED = 130


class MeshGuardError(Exception):
    """Base error; carries an exit code, an HTTP status and structured details."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    http_status: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": type(self).__name__, **self.details}


class ConfigurationError(MeshGuardError):
    exit_code = ExitCode.CONFIG_ERROR


class NotFoundError(MeshGuardError):
    """Unknown draft, anomaly or service id."""

    exit_code = ExitCode.NOT_FOUND
    http_status = 404


class InvalidStateError(MeshGuardError):
    """Transition attempted on a draft that is not pending, or is being approved."""

    exit_code = ExitCode.INVALID_STATE
    http_status = 400


class InvalidManifestError(MeshGuardError):
    exit_code = ExitCode.VALIDATION_ERROR
    http_status = 400


class ClusterError(MeshGuardError):
    exit_code = ExitCode.CLUSTER_ERROR
    http_status = 502


class DeliveryError(MeshGuardError):
    """Webhook delivery failed."""

    exit_code = ExitCode.DELIVERY_ERROR
    http_status = 502


class TransientDeliveryError(DeliveryError):
    """Timeouts, connection failures and 408/429/5xx responses; worth retrying."""


class DeliveryRejectedError(DeliveryError):
    """The receiver answered with a non-retryable status."""


class DetectionRuleFailure(MeshGuardError):
    """A single detection rule raised during a tick.

    Never propagated out of a tick; collected in the tick report instead.
    """

    def __init__(self, rule_name: str, cause: BaseException):
        super().__init__(
            f"Detection rule {rule_name!r} failed: {cause}",
            details={"rule": rule_name, "error_type": type(cause).__name__},
        )
        self.rule_name = rule_name
        self.cause = cause


def format_error_message(error: MeshGuardError) -> str:
    msg = error.message
    if error.details:
        msg += " (" + ", ".join(f"{k}={v}" for k, v in error.details.items()) + ")"
    return msg


F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling() -> Callable[[F], F]:
    """
    Turn exceptions escaping a CLI command into exit codes.

    MeshGuardError subclasses are logged and printed to stderr and return
    their own ``exit_code``; Ctrl-C returns 130; anything else is logged with
    its traceback and returns 127.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except MeshGuardError as e:
                logger.error(
                    "command_error",
                    command=func.__name__,
                    error_type=type(e).__name__,
                    exit_code=int(e.exit_code),
                )
                print(f"error: {format_error_message(e)}", file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                logger.info("command_interrupted", command=func.__name__)
                return ExitCode.INTERRUPTED
            except Exception as e:
                logger.exception(
                    "unexpected_error", command=func.__name__, error_type=type(e).__name__
                )
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator
