"""Errors raised by the channel registry and surfaced by the API views."""


class RegistryError(Exception):
    status_code = 400


class ValidationError(RegistryError):
    """Bad input, e.g. a channel name that is empty after normalization."""
    status_code = 400


class AlreadyTracked(RegistryError):
    status_code = 409


class NotTracked(RegistryError):
    status_code = 404
