"""Shared test doubles and payload builders."""

from .builders import admission_review, exec_options, pod_object, wait_until
from .fake_kube import FakePodClient

__all__ = [
    "FakePodClient",
    "admission_review",
    "exec_options",
    "pod_object",
    "wait_until",
]
