"""kubeusage: per-container usage attribution for managed Kubernetes clusters."""

__version__ = "0.1.0"
