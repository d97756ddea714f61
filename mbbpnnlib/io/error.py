"""Exceptions raised by mbbpnn."""


class ExitFunc(Exception):
    """Raised by a section whose group is absent from the input, so the factory can skip it."""
    pass


class BpnnError(Exception):
    """Base class for errors raised by the evaluator."""
    pass


class ConfigurationError(BpnnError, ValueError):
    """Malformed or inconsistent topology, coordinates or atom labels."""
    pass


class ModelLoadError(BpnnError, RuntimeError):
    """Missing or corrupt parameter files at model construction."""
    pass


class PreconditionViolation(BpnnError, RuntimeError):
    """An evaluation step was requested out of order."""
    pass


class StaleGradientError(PreconditionViolation):
    """Network backward pass without a matching forward pass on the same input."""
    pass
