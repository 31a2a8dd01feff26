"""
Custom exceptions for the Kommo tools application.
"""

from typing import Optional


class KommoAPIError(Exception):
    """Raised when a request to the Kommo API fails or returns something that isn't JSON"""

    def __init__(
        self,
        status_code: Optional[int],
        message: str,
        url: Optional[str] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.url = url
        self.response_body = response_body

    def __str__(self) -> str:
        s = f'KommoAPIError ({self.status_code}): {self.message}'
        if self.url:
            s += f' - {self.url}'
        return s


class InvalidFieldsError(Exception):
    """Raised when the fields passed to an update can't be processed at all"""

    pass
