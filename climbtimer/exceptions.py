# climbtimer/exceptions.py
"""
Errors raised at the room registry and import boundary.

The rotation engine and phase clock never raise; these exist for the
operations a caller has to be told about (HTTP room admin, spreadsheet
import).
"""


class ClimbTimerError(Exception):
    """Base class for every climbtimer error."""
    pass


class RoomNotFound(ClimbTimerError):
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class RoomDeletionDenied(ClimbTimerError):
    def __init__(self, room_id, reason):
        self.room_id = room_id
        self.reason = reason
        super().__init__(f"Room {room_id} cannot be deleted: {reason}")


class ImportRejected(ClimbTimerError):
    """A spreadsheet that cannot become rounds. Nothing was changed."""

    def __init__(self, reason, sheet=None):
        self.reason = reason
        self.sheet = sheet
        super().__init__(reason)
