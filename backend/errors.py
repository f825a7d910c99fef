"""
Error kinds shared by the audio pipeline, STT transport and avatar manager.

Every error here is recoverable at the request level. Controllers translate
AppError into a `{"success": false, "error": ...}` envelope or a `*-error`
WebSocket event.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for all application errors."""


# -------------------------
# Audio acquisition
# -------------------------

class AudioCaptureError(AppError):
    """Microphone could not be acquired for a reason not classified below."""


class PermissionDenied(AudioCaptureError):
    """The user or OS declined microphone access."""


class DeviceUnavailable(AudioCaptureError):
    """The microphone exists but is held by another process."""


class NoDeviceFound(AudioCaptureError):
    """No input device is present."""


# -------------------------
# STT transport
# -------------------------

class HandshakeTimeout(AppError):
    """STT session was not confirmed within the handshake window."""


# -------------------------
# Vendors
# -------------------------

class VendorError(AppError):
    """
    A call to the STT or avatar vendor failed.

    status:
        HTTP status returned by the vendor, or None for network failures.
    vendor_message:
        Message/body returned by the vendor, if any.
    session_id:
        Local AvatarSession id recorded in `error` status, if one exists.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        vendor_message: str | None = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.vendor_message = vendor_message
        self.session_id = session_id


# -------------------------
# Avatar sessions
# -------------------------

class InvalidState(AppError):
    """Operation attempted in the wrong session state."""


class NotFound(AppError):
    """Unknown session id."""


class Unauthorized(AppError):
    """Caller token does not match the session's recorded token."""


class ConfigurationError(AppError):
    """A required vendor credential or setting is missing."""
