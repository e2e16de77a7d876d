class ConfigurationError(ValueError):
    """Raised for malformed reconstruction setups: bad scales, kernel sizes, vector lengths, frame counts."""


class NonFiniteValueError(ArithmeticError):
    """Raised when a NaN/Inf reaches an IRLS weight, a derivative or a gradient entry."""
