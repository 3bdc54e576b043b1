"""Error taxonomy shared by the store, the engine and the lifecycle manager."""


class RoomHubError(Exception):
    """Base class for recoverable, caller-facing failures."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(RoomHubError):
    code = "not_found"


class InvalidArgument(RoomHubError):
    code = "invalid_argument"


class Conflict(RoomHubError):
    code = "conflict"

    def __init__(self, message: str, conflicting_ids: tuple[int, ...] = ()) -> None:
        super().__init__(message)
        self.conflicting_ids = conflicting_ids


class PermissionDenied(RoomHubError):
    code = "permission_denied"


class InvalidState(RoomHubError):
    code = "invalid_state"


class StorageUnavailable(RoomHubError):
    """Store timeout or connection loss. Safe to retry."""

    code = "storage_unavailable"
    retryable = True


class OverlapError(Exception):
    """Raised by a store refusing to persist overlapping confirmed bookings."""

    def __init__(self, room_id: int, conflicting_ids: tuple[int, ...]) -> None:
        super().__init__(f"Room {room_id} already has confirmed bookings {list(conflicting_ids)} in that window")
        self.room_id = room_id
        self.conflicting_ids = conflicting_ids
