"""
Domain exceptions shared across Sentinel services.

Services raise these; the API layer maps them to HTTP status codes in
sentinel.main.
"""


class SentinelError(Exception):
    """Base class for domain errors."""
    pass


class NotFoundError(SentinelError, LookupError):
    """A referenced row does not exist."""
    pass


class CaseNotFoundError(NotFoundError):
    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case not found: {case_id}")


class PatronNotFoundError(NotFoundError):
    def __init__(self, patron_id: object):
        self.patron_id = patron_id
        super().__init__(f"Patron not found: {patron_id}")


class MemberNotFoundError(NotFoundError):
    def __init__(self, member_id: object):
        self.member_id = member_id
        super().__init__(f"Team member not found: {member_id}")


class AttachmentNotFoundError(NotFoundError):
    def __init__(self, file_id: object):
        self.file_id = file_id
        super().__init__(f"File not found: {file_id}")


class ConflictError(SentinelError):
    """The request conflicts with the current state of a row."""
    pass


class StaleVersionError(ConflictError):
    """Compare-and-swap update found a different version than expected."""

    def __init__(self, record_id: str, expected: int, actual: int):
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{record_id} was modified by someone else "
            f"(expected version {expected}, found {actual})"
        )
