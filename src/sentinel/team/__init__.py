"""
Team roster, accounts and per-user settings.
"""

from sentinel.team.accounts import AccountService, TokenPair, issue_tokens
from sentinel.team.preferences import NotificationSettings, Preferences, PreferencesStore
from sentinel.team.service import (
    MemberView,
    ProfileSettingsService,
    TeamService,
    normalize_roles,
    user_from_profile,
    validate_roles,
)

__all__ = [
    "AccountService",
    "MemberView",
    "NotificationSettings",
    "Preferences",
    "PreferencesStore",
    "ProfileSettingsService",
    "TeamService",
    "TokenPair",
    "issue_tokens",
    "normalize_roles",
    "user_from_profile",
    "validate_roles",
]
