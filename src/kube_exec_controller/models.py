from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_REVIEW_KIND = "AdmissionReview"

POD_EXEC_OPTIONS_KIND = "PodExecOptions"
POD_ATTACH_OPTIONS_KIND = "PodAttachOptions"


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata the controller reads."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class Pod(BaseModel):
    """Pod snapshot. Only metadata is interpreted; spec and status ride along."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(default="v1", alias="apiVersion")
    kind: str = "Pod"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def uid(self) -> str:
        return self.metadata.uid

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.labels

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.annotations


class UserInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    username: str = ""
    uid: Optional[str] = None
    groups: List[str] = Field(default_factory=list)


class AdmissionRequest(BaseModel):
    """The ``request`` half of an AdmissionReview sent by the API server."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    uid: str
    kind: Optional[Dict[str, Any]] = None
    resource: Optional[Dict[str, Any]] = None
    sub_resource: Optional[str] = Field(default=None, alias="subResource")
    name: str = ""
    namespace: str = ""
    operation: Optional[str] = None
    user_info: UserInfo = Field(default_factory=UserInfo, alias="userInfo")
    object: Optional[Any] = None
    old_object: Optional[Any] = Field(default=None, alias="oldObject")


class Status(BaseModel):
    code: int
    message: str
    reason: Optional[str] = None


class AdmissionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    allowed: bool
    # serialised as "status", the key the API server reads
    result: Optional[Status] = Field(default=None, alias="status")


class AdmissionReview(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(default=ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_REVIEW_KIND
    request: Optional[AdmissionRequest] = None
    response: Optional[AdmissionResponse] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PodExecOptions(BaseModel):
    kind: Literal["PodExecOptions"]
    container: str
    command: List[str]


class PodAttachOptions(BaseModel):
    kind: Literal["PodAttachOptions"]
    container: str
    command: List[str] = Field(default_factory=list)


InteractionOptions = Annotated[
    Union[PodExecOptions, PodAttachOptions], Field(discriminator="kind")
]
interaction_options_adapter: TypeAdapter[InteractionOptions] = TypeAdapter(
    InteractionOptions
)


# ---------------------------------------------------------------------------
# Events passed from the webhook to the controller
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PodInteraction:
    """An interactive session observed on a Pod."""

    pod_name: str
    pod_namespace: str
    container_name: str
    username: str
    commands: Tuple[str, ...]
    init_time: datetime

    def log_fields(self) -> Dict[str, Any]:
        return {
            "pod_name": self.pod_name,
            "pod_namespace": self.pod_namespace,
            "container_name": self.container_name,
            "username": self.username,
            "command_list": ",".join(self.commands),
            "interacted_time": self.init_time.isoformat(),
        }


@dataclass(frozen=True)
class PodExtensionUpdate:
    """An updated Pod whose extension annotation changed, and who changed it."""

    pod: Pod
    username: str

    def log_fields(self) -> Dict[str, Any]:
        return {
            "pod_name": self.pod.name,
            "pod_namespace": self.pod.namespace,
            "requester": self.username,
        }


@dataclass(frozen=True)
class EvictionDue:
    """Posted by an expired termination timer back to the controller loop."""

    uid: str
    pod_name: str
    pod_namespace: str
