"""JSON Patch construction for Pod labels and annotations."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping

from .models import Pod


class MetadataType(str, Enum):
    LABELS = "labels"
    ANNOTATIONS = "annotations"


def escape_json_pointer(key: str) -> str:
    # "~" first, otherwise the "~1" produced for "/" would be re-escaped
    return key.replace("~", "~0").replace("/", "~1")


def sanitize_label_value(value: str) -> str:
    """Replace characters Kubernetes does not accept in label values."""
    return value.replace(":", "_")


def build_metadata_patch(
    pod: Pod, metadata_type: MetadataType, values: Mapping[str, str]
) -> List[Dict[str, Any]]:
    """Build ``add`` operations setting ``values`` on the Pod's labels or annotations.

    The target map has to exist before keys can be added under it, so an
    empty map is added first when the Pod has none.
    """
    metadata_type = MetadataType(metadata_type)
    current = pod.labels if metadata_type is MetadataType.LABELS else pod.annotations

    ops: List[Dict[str, Any]] = []
    if not current:
        ops.append(
            {"op": "add", "path": f"/metadata/{metadata_type.value}", "value": {}}
        )

    for key in sorted(values):
        value = values[key]
        if metadata_type is MetadataType.LABELS:
            value = sanitize_label_value(value)
        ops.append(
            {
                "op": "add",
                "path": f"/metadata/{metadata_type.value}/{escape_json_pointer(key)}",
                "value": value,
            }
        )
    return ops
