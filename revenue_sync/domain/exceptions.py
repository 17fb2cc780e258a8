"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NotFoundError(DomainException):
    """Requested entity does not exist"""

    pass


class BankAccountNotFoundError(NotFoundError):
    """No bank account on file for the given id or company"""

    pass


class ReportNotFoundError(NotFoundError):
    """Revenue report id is unknown"""

    pass


class BankAPIError(DomainException):
    """Bank API returned an error or is unavailable"""

    pass


class InvalidTransactionDataError(DomainException):
    """Transaction data is malformed or invalid"""

    pass


class InvalidReportStatusError(DomainException):
    """Verification requested with a status other than verified/rejected"""

    pass
