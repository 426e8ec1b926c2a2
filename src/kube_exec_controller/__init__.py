"""Admission webhook and controller evicting Pods after kubectl exec/attach."""

from importlib import import_module

__all__ = ["__version__", "create_app", "Settings"]
__version__ = "0.1.0"

from .config import Settings


def create_app(*args, **kwargs):
    """Lazy import wrapper to avoid package-level import cycles."""

    module = import_module(".api", __name__)
    return module.create_app(*args, **kwargs)
