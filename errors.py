"""
Domain errors for the outing-pass service.

Each error carries the HTTP status the API answers with; the engine raises them and
`main.py` turns them into `{"detail": ...}` responses.
"""


class GatePassError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WindowClosed(GatePassError):
    status_code = 409

    def __init__(self, message: str = "Outing window is currently closed."):
        super().__init__(message)


class NotFound(GatePassError):
    status_code = 404

    def __init__(self, pass_id: str):
        super().__init__(f"Pass {pass_id} not found. Please check the ID.")
        self.pass_id = pass_id


class InvalidTransition(GatePassError):
    status_code = 409


class InvalidCapacity(GatePassError):
    status_code = 422

    def __init__(self, capacity: int):
        super().__init__(f"Capacity must be a non-negative integer, got {capacity}")
        self.capacity = capacity


class StoreError(GatePassError):
    status_code = 503
