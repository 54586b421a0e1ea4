"""State Store, holds the state of pending authorization requests until their response arrives."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config.const import DEFAULT_STATE_LIFETIME
from ..tools.types import AuthorizeState


class StateStore:
    """Holds the pending authorization requests, keyed by their state value"""

    def __init__(self, lifetime: int = DEFAULT_STATE_LIFETIME) -> None:
        """Initialize the in-memory store."""
        self.lifetime = timedelta(seconds=lifetime)
        self._data: dict[str, dict] = {}

    def add(self, state: AuthorizeState) -> None:
        """Stores the state of a new authorization request."""
        self._purge_expired()
        expiration = datetime.now(timezone.utc) + self.lifetime
        self._data[state.state] = {
            "state": state,
            "expiration": expiration.isoformat(),
        }

    def pop(self, state_value: Optional[str]) -> Optional[AuthorizeState]:
        """Retrieve the request state for a response, it can only be taken once."""
        if not state_value:
            return None

        # Removed before checking expiry, a state is never handed out twice
        entry = self._data.pop(state_value, None)

        if (
            entry
            and datetime.fromisoformat(entry["expiration"]) > datetime.now(timezone.utc)
        ):
            return entry["state"]

        return None

    def _purge_expired(self) -> None:
        now = datetime.now(timezone.utc)
        for key in [
            key
            for key, entry in self._data.items()
            if datetime.fromisoformat(entry["expiration"]) <= now
        ]:
            self._data.pop(key)
