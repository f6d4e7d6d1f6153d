from typing import Dict

import yaml

from kubedeck.models import (
    K8sContainer,
    K8sDeployment,
    K8sDeploymentSpec,
    K8sLabelSelector,
    K8sMetadata,
    K8sPod,
    K8sPodSpec,
    K8sPodTemplate,
    ResourceKind,
)


def resource_labels(name: str) -> Dict[str, str]:
    """Return the labels that tie the resource and its selector together."""
    return {"app": name}


def pod_spec(name: str, image: str) -> K8sPodSpec:
    return K8sPodSpec(containers=[K8sContainer(name=name, image=image)])


def pod_manifest(name: str, image: str) -> dict:
    """Produce a minimal Pod manifest."""
    manifest = K8sPod(
        apiVersion="v1",
        kind="Pod",
        metadata=K8sMetadata(name=name, labels=resource_labels(name)),
        spec=pod_spec(name, image),
    )
    return manifest.model_dump(exclude_defaults=True)


def deployment_manifest(name: str, image: str) -> dict:
    """Produce a minimal Deployment manifest with a single replica.

    The selector must match the labels of the Pod template or K8s will reject
    the Deployment. Both therefore derive from the same `resource_labels`.

    """
    labels = resource_labels(name)
    manifest = K8sDeployment(
        apiVersion="apps/v1",
        kind="Deployment",
        metadata=K8sMetadata(name=name, labels=labels),
        spec=K8sDeploymentSpec(
            replicas=1,
            selector=K8sLabelSelector(matchLabels=labels.copy()),
            template=K8sPodTemplate(
                metadata=K8sMetadata(labels=labels.copy()),
                spec=pod_spec(name, image),
            ),
        ),
    )
    return manifest.model_dump(exclude_defaults=True)


def manifest(kind: ResourceKind, name: str, image: str) -> str:
    """Return the default YAML manifest for a new `kind` resource.

    The output only depends on the inputs, ie identical inputs always produce
    identical text.

    """
    if kind == ResourceKind.pod:
        data = pod_manifest(name, image)
    elif kind == ResourceKind.deployment:
        data = deployment_manifest(name, image)
    else:
        raise ValueError(f"unsupported resource kind <{kind}>")

    # Keep the familiar `apiVersion, kind, metadata, spec` order.
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
