from typing import Optional


class TrendScopeError(Exception):
    """Base exception for TrendScope errors."""
    pass

class ConfigError(TrendScopeError):
    """Configuration loading specific errors."""
    pass

class DataSourceError(TrendScopeError):
    """Timeline ingestion specific errors."""
    pass


class MalformedPointError(TrendScopeError):
    """
    A single point violates its contract (unparsable period, wrong numeric type).
    Carries enough context to attribute the failure to exactly one input point.
    """

    def __init__(self, message: str, series: Optional[str] = None, index: Optional[int] = None, field: Optional[str] = None):
        self.series = series
        self.index = index
        self.field = field
        location = ""
        if series is not None and index is not None:
            location = f"{series}[{index}]"
        elif index is not None:
            location = f"[{index}]"
        if field:
            location = f"{location}.{field}" if location else field
        super().__init__(f"{location}: {message}" if location else message)
        self.reason = message


class InsufficientDataError(TrendScopeError):
    """One or both comparison inputs are missing. Rendered as a placeholder state."""
    pass

class IncomparablePeriodsError(InsufficientDataError):
    """Comparison windows overlap or are not chronologically ordered."""
    pass


class UpstreamPredictionError(TrendScopeError):
    """The AI prediction provider failed or returned malformed data."""
    pass


class InvalidTransitionError(TrendScopeError):
    """Prediction workflow transition not allowed from the current state."""
    pass
