class KubeCostGuardError(Exception):
    """Base exception for KubeCostGuard."""

    pass


class SnapshotError(KubeCostGuardError):
    """Raised when nodes or pods cannot be enumerated; the evaluation cycle is unusable."""

    pass


class PricingConfigError(KubeCostGuardError):
    """Raised when a pricing document cannot be read or validated."""

    pass


class CleanupError(KubeCostGuardError):
    """Raised when a cleanup run is requested in a mode it cannot honour."""

    pass
