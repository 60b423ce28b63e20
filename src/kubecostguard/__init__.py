"""KubeCostGuard: Kubernetes health scoring and cost attribution."""

__version__ = "0.3.0"
