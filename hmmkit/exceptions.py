"""
Exception hierarchy for the hmmkit system.
"""


class HMMKitError(Exception):
    """Base exception for hmmkit."""
    pass


class InvalidDimensionsError(HMMKitError, ValueError):
    """Model constructed with non-positive state or symbol counts."""
    pass


class ObservationError(HMMKitError, ValueError):
    """Observation sequences that are empty, malformed or out of range."""
    pass


class ModelTrainingError(HMMKitError):
    """Training could not be carried out on the given model and corpus."""
    pass


class PersistenceError(HMMKitError):
    """Model store/load failures."""
    pass


class ConfigurationError(HMMKitError):
    """Invalid or unreadable configuration."""
    pass
