"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Malformed or missing field, illegal status transition, duplicate week"""

    pass


class NotFoundError(DomainException):
    """Budget, category, payment or household member is absent"""

    pass


class ConflictError(DomainException):
    """Operation blocked by live references"""

    pass


class HouseholdDirectoryError(DomainException):
    """Household directory returned an error or is unavailable"""

    pass
