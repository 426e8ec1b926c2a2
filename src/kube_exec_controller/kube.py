"""Kubernetes API access used by the controller and the kubectl plugin.

Only the handful of Pod operations the controller needs are exposed, behind
the :class:`PodClient` protocol, so tests can substitute an in-memory client.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client import ApiException, CoreV1Api

from .errors import KubeAPIError, PodNotFoundError
from .logging import get_logger
from .models import Pod

logger = get_logger(__name__)

COMPONENT_NAME = "kube-exec-controller"
EVENT_REASON = "PodInteraction"
JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"


class PodClient(Protocol):
    """Pod operations consumed by the controller and the CLI."""

    def list_pods_with_label(self, label_key: str) -> List[Pod]:
        """List Pods in all namespaces that carry ``label_key``."""

    def list_pods(self, namespace: str) -> List[Pod]:
        """List every Pod in ``namespace``."""

    def get_pod(self, namespace: str, name: str) -> Pod:
        """Fetch a Pod; raises PodNotFoundError when it does not exist."""

    def patch_pod(self, namespace: str, name: str, ops: Sequence[Dict[str, Any]]) -> Pod:
        """Apply a JSON Patch and return the patched Pod."""

    def evict_pod(self, namespace: str, name: str) -> None:
        """Evict a Pod through the eviction subresource."""

    def post_event(self, pod: Pod, message: str, reason: str = EVENT_REASON) -> None:
        """Attach a human-readable Warning event to a Pod."""


def _translate(exc: ApiException, namespace: str, name: str) -> KubeAPIError:
    if exc.status == 404:
        return PodNotFoundError(namespace, name)
    return KubeAPIError(
        f"Kubernetes API call failed for pod {namespace}/{name}: {exc.reason}",
        status=exc.status,
        details={"namespace": namespace, "name": name},
    )


class KubernetesPodClient:
    """:class:`PodClient` backed by the official ``kubernetes`` client."""

    def __init__(self, core_api: CoreV1Api, component: str = COMPONENT_NAME):
        self.core_api = core_api
        self.component = component

    @classmethod
    def in_cluster(cls, api_server: Optional[str] = None) -> "KubernetesPodClient":
        configuration = k8s_client.Configuration()
        k8s_config.load_incluster_config(client_configuration=configuration)
        if api_server:
            logger.info("Overriding api-server url in K8s client config", url=api_server)
            configuration.host = api_server
        return cls(CoreV1Api(k8s_client.ApiClient(configuration)))

    @classmethod
    def from_kubeconfig(
        cls, config_file: Optional[str] = None, context: Optional[str] = None
    ) -> "KubernetesPodClient":
        api_client = k8s_config.new_client_from_config(
            config_file=config_file, context=context
        )
        return cls(CoreV1Api(api_client))

    def _to_pod(self, v1_pod: Any) -> Pod:
        raw = self.core_api.api_client.sanitize_for_serialization(v1_pod)
        return Pod.model_validate(raw)

    def list_pods_with_label(self, label_key: str) -> List[Pod]:
        try:
            pods = self.core_api.list_pod_for_all_namespaces(label_selector=label_key)
        except ApiException as exc:
            raise KubeAPIError(
                f"Failed to list pods with label {label_key}: {exc.reason}",
                status=exc.status,
            ) from exc
        return [self._to_pod(item) for item in pods.items or []]

    def list_pods(self, namespace: str) -> List[Pod]:
        try:
            pods = self.core_api.list_namespaced_pod(namespace=namespace)
        except ApiException as exc:
            raise KubeAPIError(
                f"Failed to list pods in namespace {namespace}: {exc.reason}",
                status=exc.status,
            ) from exc
        return [self._to_pod(item) for item in pods.items or []]

    def get_pod(self, namespace: str, name: str) -> Pod:
        try:
            return self._to_pod(
                self.core_api.read_namespaced_pod(name=name, namespace=namespace)
            )
        except ApiException as exc:
            raise _translate(exc, namespace, name) from exc

    def patch_pod(self, namespace: str, name: str, ops: Sequence[Dict[str, Any]]) -> Pod:
        try:
            patched = self.core_api.patch_namespaced_pod(
                name=name,
                namespace=namespace,
                body=list(ops),
                field_manager=self.component,
                _content_type=JSON_PATCH_CONTENT_TYPE,
            )
        except ApiException as exc:
            raise _translate(exc, namespace, name) from exc
        return self._to_pod(patched)

    def evict_pod(self, namespace: str, name: str) -> None:
        body = k8s_client.V1Eviction(
            metadata=k8s_client.V1ObjectMeta(name=name, namespace=namespace)
        )
        try:
            self.core_api.create_namespaced_pod_eviction(
                name=name, namespace=namespace, body=body
            )
        except ApiException as exc:
            raise _translate(exc, namespace, name) from exc

    def post_event(self, pod: Pod, message: str, reason: str = EVENT_REASON) -> None:
        now = datetime.now(timezone.utc)
        event = k8s_client.CoreV1Event(
            metadata=k8s_client.V1ObjectMeta(
                generate_name=f"{pod.name}.", namespace=pod.namespace
            ),
            involved_object=k8s_client.V1ObjectReference(
                api_version="v1",
                kind="Pod",
                name=pod.name,
                namespace=pod.namespace,
                uid=pod.uid or None,
            ),
            reason=reason,
            message=message,
            type="Warning",
            source=k8s_client.V1EventSource(component=self.component),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )
        try:
            self.core_api.create_namespaced_event(namespace=pod.namespace, body=event)
        except ApiException as exc:
            raise _translate(exc, pod.namespace, pod.name) from exc


def current_namespace(config_file: Optional[str] = None, context: Optional[str] = None) -> str:
    """Namespace of the selected kubeconfig context, ``default`` when unset."""
    contexts, active = k8s_config.list_kube_config_contexts(config_file=config_file)
    selected = active
    if context:
        selected = next((c for c in contexts if c.get("name") == context), active)
    return (selected or {}).get("context", {}).get("namespace") or "default"
