from fastapi import HTTPException


class HTTP404(HTTPException):
    """404 Not Found"""

    def __init__(self, detail: str = 'Not found'):
        super().__init__(status_code=404, detail=detail)


class HTTP400(HTTPException):
    """400 Bad Request"""

    def __init__(self, detail: str = 'Bad request'):
        super().__init__(status_code=400, detail=detail)


class HTTP502(HTTPException):
    """502 Bad Gateway, Kommo itself failed"""

    def __init__(self, detail: str = 'Bad gateway'):
        super().__init__(status_code=502, detail=detail)
