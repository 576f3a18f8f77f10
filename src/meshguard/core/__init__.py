"""Error types and CLI exit codes shared by every meshguard component."""

from meshguard.core.errors import (
    ClusterError,
    ConfigurationError,
    DeliveryError,
    DeliveryRejectedError,
    DetectionRuleFailure,
    ExitCode,
    InvalidManifestError,
    InvalidStateError,
    MeshGuardError,
    NotFoundError,
    TransientDeliveryError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "MeshGuardError",
    "ConfigurationError",
    "NotFoundError",
    "InvalidStateError",
    "InvalidManifestError",
    "ClusterError",
    "DeliveryError",
    "TransientDeliveryError",
    "DeliveryRejectedError",
    "DetectionRuleFailure",
    "main_with_error_handling",
    "format_error_message",
]
