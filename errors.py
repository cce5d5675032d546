class SignalingError(Exception):
    """Base class for errors reported back to the originating connection."""

    message = "Signaling error"

    def __init__(self, message: str = None):
        if message:
            self.message = message
        super().__init__(self.message)


class RoomNotFound(SignalingError):
    message = "Room not found"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Room {code} not found")


class AlreadyBound(SignalingError):
    message = "Connection has already joined a room"


class NotJoined(SignalingError):
    message = "Join a room first"


class RoomMismatch(SignalingError):
    message = "Connection is not a member of that room"


class InvalidMessage(SignalingError):
    message = "Invalid message"


class RelayTargetUnavailable(SignalingError):
    """Target of a signaling message is gone. Dropped, never reported."""

    message = "Relay target unavailable"
