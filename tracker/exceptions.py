# tracker/exceptions.py


class TrackerError(Exception):
    """Base class for errors raised by the tracker services."""


class RetrievalError(TrackerError):
    """A user's records could not be loaded; no summary is produced."""


class UnknownUserError(RetrievalError):
    def __init__(self, user_id: str):
        super().__init__(f"user {user_id!r} not found.")
        self.user_id = user_id


class UserExists(TrackerError):
    def __init__(self, user_id: str):
        super().__init__(f"user {user_id!r} already exists.")
        self.user_id = user_id


class UsernameTaken(TrackerError):
    def __init__(self, username: str):
        super().__init__(f"username {username!r} is already taken.")
        self.username = username


class FollowError(TrackerError):
    pass


class CatalogError(TrackerError):
    """The problem catalog could not be fetched or decoded."""
