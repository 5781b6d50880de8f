"""
Error taxonomy for gateway calls and capture devices.

Every failure is terminal for the request that raised it; nothing here is
retried. Controllers convert these into user-visible status text.
"""

from typing import Optional


class PortalError(Exception):
    """Base class for all portal errors."""


class GatewayError(PortalError):
    """A call to the generative service did not produce a usable result."""


class TransportFailure(GatewayError):
    """The service call itself was rejected (network, quota, or service error)."""

    def __init__(self, message: str, error_type: str = "api_error"):
        super().__init__(message)
        self.error_type = error_type


class EmptyResult(GatewayError):
    """The service answered but returned no usable content part."""

    default_message = "synthesis returned no data"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class ParseFailure(GatewayError):
    """A structured response was not valid JSON of the expected shape."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class OperationTimeout(GatewayError):
    """A call or long-running job exceeded its time or poll budget."""


class OperationCancelled(GatewayError):
    """The caller cancelled the request before it finished."""

    def __init__(self, message: str = "Cancelled"):
        super().__init__(message)


class CaptureDeviceError(PortalError):
    """A camera or microphone could not be acquired or read."""


def classify_error(error: Exception) -> str:
    """Map a raw SDK/transport exception to a coarse error type for logging."""
    text = str(error).lower()
    if "quota" in text or "rate limit" in text or "429" in text:
        return "rate_limit"
    if "timeout" in text or "timed out" in text:
        return "timeout"
    if "api key" in text or "permission" in text or "403" in text:
        return "auth"
    return "api_error"
