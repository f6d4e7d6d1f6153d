from typing import Dict

from kubedeck.models import ResourceKind

# Convenience: the status the backend reports for pods that exist but have no
# phase yet. We also use it as the optimistic placeholder after a create.
STATUS_PENDING = "Pending"
STATUS_UNKNOWN = "Unknown"

# Manifests travel as YAML, everything else as JSON.
YAML_CONTENT_TYPE = "application/x-yaml"

DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_IMAGE = "nginx"
DEFAULT_INTERVAL = 10


def list_path(kind: ResourceKind, namespace: str) -> str:
    """Return the backend path that lists all `kind` resources in `namespace`."""
    return f"/{kind.value}s/{namespace}"


def resource_path(kind: ResourceKind, namespace: str, name: str) -> str:
    """Return the backend path of a single resource."""
    return f"/{kind.value}/{namespace}/{name}"


def supported_operations() -> Dict[ResourceKind, set]:
    """Return the operations the backend supports for each resource kind.

    The backend can only edit pods and only serves logs and manifests for
    them. Deployments can merely be created and deleted.

    """
    return {
        ResourceKind.pod: {"create", "update", "delete", "logs", "manifest"},
        ResourceKind.deployment: {"create", "delete"},
    }
