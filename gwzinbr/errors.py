class GWZError(ValueError):
    pass


class ConfigurationError(GWZError):
    """Raised for an invalid runtime setting."""


class FamilyError(GWZError):
    """Raised for an unknown model family."""


class KernelError(GWZError):
    """Raised for an unknown kernel method or an invalid bandwidth."""


class CriterionError(GWZError):
    """Raised for an unknown bandwidth selection criterion."""


class DataError(GWZError):
    """Raised when the data frame or formula cannot be turned into a count model."""
