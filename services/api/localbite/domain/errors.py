from __future__ import annotations


class LocalBiteError(Exception):
    status_code: int = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(LocalBiteError):
    status_code = 400


class UnknownCountryError(ValidationError):
    def __init__(self, country: str):
        super().__init__(f"Unknown country name: {country}")
        self.country = country


class GeocodingError(LocalBiteError):
    """Provider unavailable (retryable) or no usable match for the query."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = 502 if retryable else 400


class NotFoundError(LocalBiteError):
    status_code = 404

    def __init__(self, entity: str, entity_id: object = None):
        detail = f"{entity} not found" if entity_id is None else f"{entity} not found: {entity_id}"
        super().__init__(detail)
        self.entity = entity
        self.entity_id = entity_id


class ForbiddenError(LocalBiteError):
    status_code = 403

    def __init__(self, message: str = "Only the author can modify this resource"):
        super().__init__(message)


class AuthenticationError(LocalBiteError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ConflictRetried(LocalBiteError):
    """A lost insert race that was resolved by re-reading the winner.

    Only used for logging; never reaches a client.
    """

    def __init__(self, key: str):
        super().__init__(f"Insert conflict on key {key!r} resolved by re-read")
        self.key = key
