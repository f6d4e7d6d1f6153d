from enum import Enum
from typing import Any, Dict, List, Literal

import httpx
from pydantic import BaseModel, ConfigDict

# ----------------------------------------------------------------------
# Kubernetes
# ----------------------------------------------------------------------


class K8sMetadata(BaseModel):
    name: str = ""
    namespace: str = ""
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}


class K8sContainer(BaseModel):
    name: str = ""
    image: str = ""
    ports: List[dict] = []


class K8sPodSpec(BaseModel):
    containers: List[K8sContainer] = []
    restartPolicy: str = ""


class K8sPod(BaseModel):
    apiVersion: str = ""
    kind: str = ""
    metadata: K8sMetadata = K8sMetadata()
    spec: K8sPodSpec = K8sPodSpec()


class K8sLabelSelector(BaseModel):
    matchLabels: Dict[str, str] = {}


class K8sPodTemplate(BaseModel):
    metadata: K8sMetadata = K8sMetadata()
    spec: K8sPodSpec = K8sPodSpec()


class K8sDeploymentSpec(BaseModel):
    replicas: int = 0
    selector: K8sLabelSelector = K8sLabelSelector()
    template: K8sPodTemplate = K8sPodTemplate()


class K8sDeployment(BaseModel):
    apiVersion: str = ""
    kind: str = ""
    metadata: K8sMetadata = K8sMetadata()
    spec: K8sDeploymentSpec = K8sDeploymentSpec()


# ----------------------------------------------------------------------
# Kubedeck Internal Models.
# ----------------------------------------------------------------------


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    # Origin of the backend, eg `http://localhost:8080`. All REST paths are
    # relative to `{api_url}/api`.
    api_url: str

    # Seconds between two reconciliation ticks.
    interval: float = 10

    # Seconds to wait after a pod update before re-fetching the pod list. The
    # backend deletes and re-creates the pod and needs a moment to do so.
    settle: float = 2

    # Default container image for generated manifests.
    image: str = "nginx"

    loglevel: str = "info"
    host: str = "127.0.0.1"
    port: int = 5002

    # A single reusable HTTP client for all backend requests.
    httpclient: httpx.AsyncClient


class ResourceKind(str, Enum):
    pod = "pod"
    deployment = "deployment"


class ResourceSummary(BaseModel):
    """One entry of a resource listing."""

    model_config = ConfigDict(extra="forbid")

    name: str
    status: str = "Unknown"


class OpState(str, Enum):
    idle = "Idle"
    validating = "Validating"
    inflight = "InFlight"
    succeeded = "Succeeded"
    failed = "Failed"


class Outcome(BaseModel):
    """Result of a lifecycle operation as reported to the user."""

    model_config = ConfigDict(extra="forbid")

    state: OpState = OpState.idle

    # Empty for successful operations, otherwise one of
    # `validation`, `backend` or `context`.
    error: Literal["", "validation", "backend", "context"] = ""
    message: str = ""
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.state == OpState.succeeded


class OperationContext(BaseModel):
    """The currently open modal (if any) and the resource it targets."""

    model_config = ConfigDict(extra="forbid")

    mode: Literal["none", "create", "edit", "logs"] = "none"
    kind: ResourceKind = ResourceKind.pod
    name: str = ""
    image: str = "nginx"
    manifest: str = ""

    # Manifests fetched from the backend are frozen and never regenerated.
    frozen: bool = False

    def close(self) -> None:
        self.mode = "none"
        self.name = ""
        self.manifest = ""
        self.frozen = False


# ----------------------------------------------------------------------
# Backend Interface Models.
# ----------------------------------------------------------------------


class PodList(BaseModel):
    """GET /api/pods/{namespace}"""

    pods: List[Dict[str, Any]] | None = None


class DeploymentList(BaseModel):
    """GET /api/deployments/{namespace}"""

    deployments: List[Any] | None = None


class NamespaceList(BaseModel):
    """GET /api/namespaces"""

    namespaces: List[str] | None = None


class ClusterInfo(BaseModel):
    """GET /api/cluster-name"""

    clusterName: str = ""


class NodeSummary(BaseModel):
    """One entry of GET /api/node-details.

    The backend reports the raw capacity quantities, eg `4` CPUs and
    `16318412Ki` of memory.

    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: str
    cpu: str = ""
    memory: str = ""
    status: str = "Unready"


class NodeList(BaseModel):
    """GET /api/node-details"""

    nodes: List[NodeSummary] | None = None


class PodLogs(BaseModel):
    """GET /api/pod/{namespace}/{name}/logs"""

    logs: str = ""


class AssistantQuery(BaseModel):
    """POST /api/groq"""

    model_config = ConfigDict(extra="forbid")

    yamlType: str
    query: str


# ----------------------------------------------------------------------
# Web Shell Interface Models.
# ----------------------------------------------------------------------


class SessionInfo(BaseModel):
    """GET /v1/session"""

    model_config = ConfigDict(extra="forbid")

    namespace: str = ""
    context: OperationContext = OperationContext()
    logs: str = ""

    # Incremented whenever the store changes, so clients can poll cheaply.
    revision: int = 0


class NamespaceSelection(BaseModel):
    """PUT /v1/session"""

    model_config = ConfigDict(extra="forbid")

    namespace: str


class OpenRequest(BaseModel):
    """POST /v1/session/open"""

    model_config = ConfigDict(extra="forbid")

    mode: Literal["create", "edit", "logs"]
    kind: ResourceKind = ResourceKind.pod
    name: str
    image: str = ""


class TemplateInputs(BaseModel):
    """PUT /v1/session/inputs

    Fields that are `None` keep their current value.

    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    kind: ResourceKind | None = None
    image: str | None = None


class ManifestEdit(BaseModel):
    """PUT /v1/session/manifest"""

    model_config = ConfigDict(extra="forbid")

    manifest: str


class AssistantRequest(BaseModel):
    """POST /v1/assistant"""

    model_config = ConfigDict(extra="forbid")

    query: str
