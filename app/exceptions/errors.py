from fastapi import status
from fastapi.responses import JSONResponse

class ApplicationException(Exception):
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_response(self):
        return JSONResponse(
            status_code=self.status_code,
            content={"error": self.message}
        )


class InvalidCode(ApplicationException):
    """No device holds the code, the code expired, or the requester holds it."""

    def __init__(self, message: str = "Invalid or expired code"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class CodeGenerationExhausted(ApplicationException):
    def __init__(self, attempts: int):
        super().__init__(
            f"Could not allocate a unique pairing code after {attempts} attempts",
            status.HTTP_503_SERVICE_UNAVAILABLE
        )
        self.attempts = attempts


class UnregisteredSession(ApplicationException):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} has not registered a device", status.HTTP_401_UNAUTHORIZED)
        self.session_id = session_id


class StoreUnavailable(ApplicationException):
    def __init__(self, operation: str):
        super().__init__(f"Store unavailable during {operation}", status.HTTP_503_SERVICE_UNAVAILABLE)
        self.operation = operation


class AlreadyPaired(ApplicationException):
    """A device with a peer cannot advertise a pairing code."""

    def __init__(self, device_id: str):
        super().__init__("Device is already paired", status.HTTP_409_CONFLICT)
        self.device_id = device_id
