class InvalidClassFeeError(ValueError):
    """Class fee is missing, negative or not a number"""


class UnknownMonthError(ValueError):
    pass


class SessionRequiredError(PermissionError):
    """A bulk operation was started without an authenticated owner"""


class StoreError(RuntimeError):
    """A single read or write against the student store failed"""
