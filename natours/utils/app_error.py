class AppError(Exception):
    """Operational error: expected, safe to show to the client."""

    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        self.status = "fail" if 400 <= status_code < 500 else "error"
        self.is_operational = True
        super().__init__(message)
