from __future__ import annotations


class HiddenApiError(Exception):
    """Base class for failures that abort an audit run."""


class ConfigError(HiddenApiError):
    pass


class ClassifierUnavailableError(HiddenApiError):
    """The hidden API policy database could not be loaded."""


class UnitLoadError(HiddenApiError):
    """A compiled unit could not be opened or decoded."""


class CandidateLimitExceeded(HiddenApiError):
    """The reflection candidate cross-product exceeded the configured bound."""

    def __init__(self, limit: int, candidates: int) -> None:
        super().__init__(
            f"Reflection candidate space of {candidates} pairs exceeds limit of {limit}"
        )
        self.limit = limit
        self.candidates = candidates
