import asyncio
import json
import logging
import ssl
from typing import Dict, List, Tuple

import httpx
import pydantic
import tenacity as tc

from kubedeck.defaults import (
    STATUS_UNKNOWN,
    YAML_CONTENT_TYPE,
    list_path,
    resource_path,
)
from kubedeck.models import (
    AssistantQuery,
    ClientConfig,
    ClusterInfo,
    DeploymentList,
    NamespaceList,
    NodeList,
    NodeSummary,
    PodList,
    PodLogs,
    ResourceKind,
    ResourceSummary,
)

# Give up on these exceptions and report them as a failed request.
WEB_EXCEPTIONS = (httpx.RequestError, ssl.SSLError, asyncio.TimeoutError)

# Only retry if the request cannot have reached the backend. Anything else
# could duplicate a POST or DELETE.
RETRY_EXCEPTIONS = (httpx.ConnectError, httpx.ConnectTimeout)


# Convenience: global logger instance to avoid repetitive code.
logit = logging.getLogger("kubedeck")


def _on_backoff(retry_state: tc.RetryCallState):
    """Log a warning on each retry."""
    attempt = retry_state.attempt_number
    _, method, path = retry_state.args[:3]

    logit.warning(f"Back off {attempt} - {method} {path}.")


async def _mysleep(delay: float):
    """This trivial function exists to mock out the `sleep` call during tests."""
    await asyncio.sleep(delay)


@tc.retry(
    stop=tc.stop_after_attempt(3),
    wait=tc.wait_exponential(multiplier=0.5, min=0, max=5),
    retry=tc.retry_if_exception_type(RETRY_EXCEPTIONS),
    before_sleep=_on_backoff,
    reraise=True,
    sleep=_mysleep,
)
async def _call(
    cfg: ClientConfig,
    method: str,
    path: str,
    content: str | None,
    headers: dict | None,
) -> httpx.Response:
    return await cfg.httpclient.request(method, path, content=content, headers=headers)


async def request(
    cfg: ClientConfig,
    method: str,
    path: str,
    content: str | None = None,
    headers: dict | None = None,
) -> Tuple[str, int, bool]:
    """Return the response body of the web request to the backend.

    Inputs:
        cfg: ClientConfig
            Its `httpclient` must have the backend `/api` URL as `base_url`.
        path: str
            Eg `/pods/default`.
        content: str
            Raw request body, usually a YAML manifest.
        headers: dict
            Additional request headers, eg the content type.

    Returns:
        (str, int, bool): the response text and the HTTP status code. The
        error flag is only set if the request could not be completed at all,
        in which case the text describes the transport problem.

    """
    try:
        ret = await _call(cfg, method, path, content=content, headers=headers)
    except WEB_EXCEPTIONS as err:
        logit.error(f"Giving up - {method} {path} - {err!r}")
        return (f"cannot reach backend: {err!r}", -1, True)

    logit.debug(
        f"{method} {ret.status_code} {ret.url}\n"
        f"Headers: {headers}\n"
        f"Payload: {content}\n"
        f"Response: {ret.text}\n"
    )
    return (ret.text, ret.status_code, False)


def _is_ok(code: int) -> bool:
    return 200 <= code < 300


async def get(cfg: ClientConfig, path: str) -> Tuple[str, bool]:
    """Make GET requests to the backend (see `request`).

    Returns the response text on success and the error detail otherwise.

    """
    text, code, err = await request(cfg, "GET", path)
    if err or code != 200:
        logit.error(f"{code} - GET - {path} - {text.strip()}")
        return (text, True)
    return (text, False)


async def post(cfg: ClientConfig, path: str, manifest: str) -> Tuple[str, bool]:
    """POST the YAML `manifest` to the backend (see `get`)."""
    headers = {"Content-Type": YAML_CONTENT_TYPE}
    text, code, err = await request(cfg, "POST", path, manifest, headers)
    if err or not _is_ok(code):
        logit.error(f"{code} - POST - {path} - {text.strip()}")
        return (text, True)
    return (text, False)


async def put(cfg: ClientConfig, path: str, manifest: str) -> Tuple[str, bool]:
    """PUT the YAML `manifest` to the backend (see `get`)."""
    headers = {"Content-Type": YAML_CONTENT_TYPE}
    text, code, err = await request(cfg, "PUT", path, manifest, headers)
    if err or not _is_ok(code):
        logit.error(f"{code} - PUT - {path} - {text.strip()}")
        return (text, True)
    return (text, False)


async def delete(cfg: ClientConfig, path: str) -> Tuple[str, bool]:
    """Make DELETE requests to the backend (see `get`)."""
    text, code, err = await request(cfg, "DELETE", path)
    if err or not _is_ok(code):
        logit.error(f"{code} - DELETE - {path} - {text.strip()}")
        return (text, True)
    return (text, False)


def decode_json(text: str) -> Tuple[dict, bool]:
    """Decode a JSON response and log the offending document on error."""
    try:
        ret = json.loads(text)
    except json.decoder.JSONDecodeError as err:
        msg = (
            f"JSON error - {err.msg} in line {err.lineno} column {err.colno}",
            "-" * 80 + "\n" + err.doc + "\n" + "-" * 80,
        )
        logit.error(str.join("\n", msg))
        return ({}, True)

    if not isinstance(ret, dict):
        logit.error(f"expected a JSON object but got {type(ret).__name__}")
        return ({}, True)
    return (ret, False)


def parse_resource_list(kind: ResourceKind, data: dict) -> List[ResourceSummary]:
    """Convert the backend's list response into `ResourceSummary` instances.

    The pod listing contains `{name, status}` entries whereas the deployment
    listing only contains names. Malformed entries and duplicate names are
    logged and skipped.

    """
    meta_log = {"component": "backend", "kind": kind.value}

    try:
        if kind == ResourceKind.pod:
            entries = [
                (_.get("name"), _.get("status") or STATUS_UNKNOWN)
                for _ in PodList.model_validate(data).pods or []
            ]
        else:
            entries = [
                (_, STATUS_UNKNOWN)
                for _ in DeploymentList.model_validate(data).deployments or []
            ]
    except pydantic.ValidationError:
        logit.error("invalid resource list", meta_log)
        return []

    out: List[ResourceSummary] = []
    seen = set()
    for name, status in entries:
        if not isinstance(name, str) or name == "":
            logit.warning(f"Skip resource without name: <{name}>", meta_log)
            continue
        if name in seen:
            logit.warning(f"Skip duplicate resource <{name}>", meta_log)
            continue
        seen.add(name)
        out.append(ResourceSummary(name=name, status=str(status)))
    return out


async def list_resources(
    cfg: ClientConfig, kind: ResourceKind, namespace: str
) -> Tuple[List[ResourceSummary], bool]:
    """Return all `kind` resources in `namespace`."""
    text, err = await get(cfg, list_path(kind, namespace))
    if err:
        return ([], True)

    data, err = decode_json(text)
    if err:
        return ([], True)
    return (parse_resource_list(kind, data), False)


async def list_namespaces(cfg: ClientConfig) -> Tuple[List[str], bool]:
    text, err = await get(cfg, "/namespaces")
    if err:
        return ([], True)

    data, err = decode_json(text)
    if err:
        return ([], True)

    try:
        ret = NamespaceList.model_validate(data)
    except pydantic.ValidationError:
        logit.error("invalid namespace list")
        return ([], True)
    return (ret.namespaces or [], False)


async def get_cluster_name(cfg: ClientConfig) -> Tuple[str, bool]:
    """Return the name of the cluster the backend talks to."""
    text, err = await get(cfg, "/cluster-name")
    if err:
        return ("", True)

    data, err = decode_json(text)
    if err:
        return ("", True)

    try:
        return (ClusterInfo.model_validate(data).clusterName, False)
    except pydantic.ValidationError:
        logit.error("invalid cluster name")
        return ("", True)


def decode_last_json(text: str) -> Tuple[dict, bool]:
    """Return the last of possibly several concatenated JSON objects in `text`.

    The node endpoint writes one growing `{"nodes": [...]}` document per node,
    so only the last one is complete. An empty body decodes to `{}`.

    """
    decoder = json.JSONDecoder()
    ret: dict = {}
    pos, text = 0, text.strip()
    while pos < len(text):
        try:
            ret, end = decoder.raw_decode(text, pos)
        except json.decoder.JSONDecodeError as err:
            logit.error(f"JSON error - {err.msg} at position {err.pos}")
            return ({}, True)
        pos = end
        while pos < len(text) and text[pos].isspace():
            pos += 1

    if not isinstance(ret, dict):
        logit.error(f"expected a JSON object but got {type(ret).__name__}")
        return ({}, True)
    return (ret, False)


async def list_nodes(cfg: ClientConfig) -> Tuple[List[NodeSummary], bool]:
    """Return the capacity and readiness of all cluster nodes."""
    text, err = await get(cfg, "/node-details")
    if err:
        return ([], True)

    data, err = decode_last_json(text)
    if err:
        return ([], True)

    try:
        ret = NodeList.model_validate(data)
    except pydantic.ValidationError:
        logit.error("invalid node list")
        return ([], True)
    return (ret.nodes or [], False)


async def get_logs(cfg: ClientConfig, namespace: str, name: str) -> Tuple[str, bool]:
    """Return the logs of the pod or the error detail."""
    path = resource_path(ResourceKind.pod, namespace, name) + "/logs"
    text, err = await get(cfg, path)
    if err:
        return (text, True)

    data, err = decode_json(text)
    if err:
        return ("backend returned corrupt logs", True)

    try:
        return (PodLogs.model_validate(data).logs, False)
    except pydantic.ValidationError:
        return ("backend returned corrupt logs", True)


async def get_manifest(
    cfg: ClientConfig, namespace: str, name: str
) -> Tuple[str, bool]:
    """Return the YAML manifest of the pod or the error detail.

    The backend answers with plain YAML but we also accept a JSON object with
    a `yaml` key.

    """
    path = resource_path(ResourceKind.pod, namespace, name) + "/yaml"
    text, err = await get(cfg, path)
    if err:
        return (text, True)

    if text.lstrip().startswith("{"):
        data, err = decode_json(text)
        if not err:
            text = str(data.get("yaml") or "")

    if text.strip() == "":
        return ("backend returned an empty manifest", True)
    return (text, False)


async def draft(cfg: ClientConfig, query: AssistantQuery) -> Tuple[Dict, bool]:
    """Ask the backend's assistant to draft a manifest.

    Returns the decoded chat completion response.

    """
    headers = {"Content-Type": "application/json"}
    payload = query.model_dump_json()
    text, code, err = await request(cfg, "POST", "/groq", payload, headers)
    if err or code != 200:
        logit.error(f"{code} - POST - /groq - {text.strip()}")
        return ({}, True)
    return decode_json(text)
