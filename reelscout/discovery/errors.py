"""Exceptions raised by the discovery pipeline."""


class DiscoveryError(Exception):
    """Base class for discovery errors."""


class UserNotFoundError(DiscoveryError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class DiscoveryDisabledError(DiscoveryError):
    def __init__(self, user_id: int):
        super().__init__(f"Discovery is disabled for user {user_id}")
        self.user_id = user_id


class RunAlreadyFinalizedError(DiscoveryError):
    """A completed or failed run can't change status again."""

    def __init__(self, run_id: int, status: str):
        super().__init__(f"Discovery run {run_id} is already {status}")
        self.run_id = run_id
        self.status = status
