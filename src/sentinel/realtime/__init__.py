"""
Real-time change notification.
"""

from sentinel.realtime.feed import ChangeEvent, ChangeFeed, ChangeType, Subscription

__all__ = ["ChangeEvent", "ChangeFeed", "ChangeType", "Subscription"]
