"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_ERROR = "DEVICE_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"
BUSY = "BUSY"
RATE_LIMITED = "RATE_LIMITED"
UPSTREAM_ERROR = "UPSTREAM_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
CONFIG_ERROR = "CONFIG_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone access was denied. Check your system privacy settings.",
    DEVICE_ERROR: "Microphone error. Check that an input device is connected.",
    VALIDATION_ERROR: "Request is missing required input.",
    BUSY: "Server is busy. Please try again later.",
    RATE_LIMITED: "Rate limit exceeded. Please wait.",
    UPSTREAM_ERROR: "Transcription failed",
    NETWORK_ERROR: "Network failed, please retry.",
    CONFIG_ERROR: "GROQ_API_KEY is not configured",
    INTERNAL_ERROR: "Internal server error",
}


class ConfigError(Exception):
    """Required runtime configuration (the provider credential) is missing."""

    code = CONFIG_ERROR


class ServiceBusy(Exception):
    """A call for this service is already in flight."""

    code = BUSY

    def __init__(self, service: str, retry_after: int) -> None:
        super().__init__(f"{service} is busy")
        self.service = service
        self.retry_after = retry_after


class TransportError(Exception):
    """The request could not be sent or no response was received."""

    code = NETWORK_ERROR


class CaptureError(Exception):
    """The capture device could not be acquired."""

    code = DEVICE_ERROR


class MicrophonePermissionError(CaptureError):
    code = PERMISSION_DENIED
