"""Exceptions raised at the item level and caught at the item boundary."""

from typing import Any, Dict, Optional


class NotificationEngineError(Exception):
    """Base exception for notification engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class DealNotFoundError(NotificationEngineError):
    """Raised when an event references a deal the reader cannot resolve."""

    def __init__(self, deal_id: str):
        super().__init__(f"Deal {deal_id} not found", {"deal_id": deal_id})
        self.deal_id = deal_id


class InvalidDisputeEventError(NotificationEngineError):
    """Raised when a dispute event is malformed or missing required fields."""
    pass


class DispatchError(NotificationEngineError):
    """Raised when a reminder could not be fully delivered and must be retried."""
    pass
