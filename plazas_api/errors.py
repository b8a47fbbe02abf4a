# plazas_api/errors.py
"""
Domain error taxonomy.
Services raise these; main.py maps every PlazaEngineError to its HTTP status
with the message as `detail`, suitable for direct display.
"""


class PlazaEngineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PlazaEngineError):
    """Missing or malformed input, rejected before any store access."""
    status_code = 400


class NotFoundError(PlazaEngineError):
    status_code = 404


class ConflictError(PlazaEngineError):
    """Plaza unavailable, destination occupied, duplicate booking."""
    status_code = 409


class StateError(PlazaEngineError):
    """Operation not valid for the current lifecycle state."""
    status_code = 409


class ExpiryError(PlazaEngineError):
    status_code = 410


class ConfigurationError(PlazaEngineError):
    """Plaza without template, or template without a tariff for the unit."""
    status_code = 422
