"""
Domain errors raised by the service modules.

Routes never build HTTP responses for these directly; main.py maps each
class to a status code in a single exception handler.
"""


class MarketplaceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    status_code = 400

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
            msg = err.get("msg", "invalid value")
            parts.append(f"{loc}: {msg}" if loc else msg)
        return cls("; ".join(parts) or "Invalid input")


class AuthorizationError(MarketplaceError):
    status_code = 403


class NotFoundError(MarketplaceError):
    status_code = 404


class DuplicateError(MarketplaceError):
    status_code = 400


class ConflictError(MarketplaceError):
    status_code = 409
