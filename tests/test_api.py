from unittest import mock

import httpx
import pytest
from fastapi.testclient import TestClient
from httpx import Response

import kubedeck.api
import kubedeck.generate
import kubedeck.watch
from kubedeck.models import ResourceKind, ResourceSummary
from kubedeck.session import Session

from .conftest import get_client_config, url


@pytest.fixture
def client(respx_mock):
    """Return a test client whose reconciliation loops never start a task."""
    ReconcileLoop = kubedeck.watch.ReconcileLoop
    with (
        mock.patch.object(ReconcileLoop, "start_tasks") as m_start,
        mock.patch.object(ReconcileLoop, "stop"),
    ):
        m_start.side_effect = lambda: [mock.MagicMock()]
        app = kubedeck.api.make_app(get_client_config())
        with TestClient(app) as c:
            yield c


def get_session(client: TestClient) -> Session:
    return client.app.extra["session"]  # type: ignore


class TestConfiguration:
    def test_compile_client_config_default(self):
        with mock.patch.dict("os.environ", values={}, clear=True):
            cfg, err = kubedeck.api.compile_client_config()
        assert not err
        assert cfg.api_url == "http://localhost:8080"
        assert cfg.interval == 10
        assert cfg.settle == 2
        assert cfg.image == "nginx"
        assert cfg.loglevel == "info"
        assert (cfg.host, cfg.port) == ("127.0.0.1", 5002)
        assert cfg.httpclient.base_url == httpx.URL("http://localhost:8080/api/")

    def test_compile_client_config_explicit(self):
        new_env = {
            "KUBEDECK_API_URL": "http://1.2.3.4:8080/",
            "KUBEDECK_INTERVAL": "5",
            "KUBEDECK_SETTLE": "0.5",
            "KUBEDECK_IMAGE": "busybox",
            "KUBEDECK_LOGLEVEL": "debug",
            "KUBEDECK_HOST": "0.0.0.0",
            "KUBEDECK_PORT": "1234",
        }
        with mock.patch.dict("os.environ", values=new_env, clear=True):
            cfg, err = kubedeck.api.compile_client_config()
        assert not err
        assert cfg.interval == 5 and cfg.settle == 0.5
        assert cfg.image == "busybox"
        assert cfg.loglevel == "debug"
        assert (cfg.host, cfg.port) == ("0.0.0.0", 1234)
        assert cfg.httpclient.base_url == httpx.URL("http://1.2.3.4:8080/api/")

    @pytest.mark.parametrize(
        "env",
        [
            {"KUBEDECK_INTERVAL": "fast"},
            {"KUBEDECK_INTERVAL": "0"},
            {"KUBEDECK_SETTLE": "-1"},
            {"KUBEDECK_PORT": "abc"},
            {"KUBEDECK_LOGLEVEL": "chatty"},
        ],
    )
    def test_compile_client_config_invalid(self, env):
        with (
            mock.patch.dict("os.environ", values=env, clear=True),
            mock.patch.object(kubedeck.api, "make_httpclient") as m_client,
        ):
            _, err = kubedeck.api.compile_client_config()
        assert err

        # Invalid settings must not leave an orphaned backend client behind.
        assert not m_client.called

    def test_make_app_invalid_config(self):
        with mock.patch.dict("os.environ", values={"KUBEDECK_PORT": "x"}, clear=True):
            with pytest.raises(RuntimeError):
                kubedeck.api.make_app()


class TestRoutes:
    def test_healthz(self, client: TestClient):
        assert client.get("/healthz").json() == 200

    def test_namespaces(self, respx_mock, client: TestClient):
        m_http = respx_mock.get(url("/namespaces"))
        m_http.return_value = Response(200, json={"namespaces": ["default", "ns1"]})
        resp = client.get("/v1/namespaces")
        assert resp.status_code == 200
        assert resp.json() == ["default", "ns1"]

        m_http.return_value = Response(500, text="boom")
        assert client.get("/v1/namespaces").status_code == 502

    def test_select_namespace(self, client: TestClient):
        resp = client.put("/v1/session", json={"namespace": "ns1"})
        assert resp.status_code == 200
        assert resp.json()["namespace"] == "ns1"
        assert client.get("/v1/session").json()["namespace"] == "ns1"

        session = get_session(client)
        assert all(_.namespace == "ns1" for _ in session.loops.values())

    def test_resources(self, client: TestClient):
        session = get_session(client)
        session.store.replace(
            ResourceKind.pod, "ns1", [ResourceSummary(name="web", status="Running")]
        )
        client.put("/v1/session", json={"namespace": "ns1"})

        resp = client.get("/v1/resources/pod")
        assert resp.json() == [{"name": "web", "status": "Running"}]
        assert client.get("/v1/resources/deployment").json() == []
        assert client.get("/v1/resources/service").status_code == 422

    def test_create_flow(self, respx_mock, client: TestClient):
        m_http = respx_mock.post(url("/deployment/ns1/api"))
        m_http.return_value = Response(200, json={"status": "success"})
        client.put("/v1/session", json={"namespace": "ns1"})

        body = {"mode": "create", "kind": "deployment", "name": "api"}
        resp = client.post("/v1/session/open", json=body)
        assert resp.status_code == 200
        ctx = resp.json()["context"]
        assert ctx["mode"] == "create"
        assert ctx["manifest"] == kubedeck.generate.manifest(
            ResourceKind.deployment, "api", "nginx"
        )

        resp = client.post("/v1/session/submit")
        assert resp.status_code == 200
        assert resp.json()["state"] == "Succeeded"
        assert client.get("/v1/session").json()["context"]["mode"] == "none"
        assert client.get("/v1/resources/deployment").json() == [
            {"name": "api", "status": "Pending"}
        ]

    def test_submit_invalid_manifest(self, client: TestClient):
        client.put("/v1/session", json={"namespace": "ns1"})
        client.post("/v1/session/open", json={"mode": "create", "name": "web"})
        resp = client.put("/v1/session/manifest", json={"manifest": "{a: 1"})
        assert resp.json()["context"]["manifest"] == "{a: 1"

        resp = client.post("/v1/session/submit")
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "validation"

    def test_submit_without_modal(self, client: TestClient):
        assert client.post("/v1/session/submit").status_code == 409

    def test_delete(self, respx_mock, client: TestClient):
        m_http = respx_mock.delete(url("/pod/ns1/web"))
        m_http.return_value = Response(500, text="internal error")

        session = get_session(client)
        items = [ResourceSummary(name="web", status="Running")]
        session.store.replace(ResourceKind.pod, "ns1", items)
        client.put("/v1/session", json={"namespace": "ns1"})

        resp = client.delete("/v1/resources/pod/web")
        assert resp.status_code == 502
        assert resp.json()["detail"]["detail"] == "internal error"
        assert session.list_resources(ResourceKind.pod) == items

        m_http.return_value = Response(200)
        assert client.delete("/v1/resources/pod/web").status_code == 200
        assert session.list_resources(ResourceKind.pod) == []

    def test_logs(self, respx_mock, client: TestClient):
        m_http = respx_mock.get(url("/pod/ns1/web/logs"))
        m_http.return_value = Response(200, json={"logs": "hello"})
        client.put("/v1/session", json={"namespace": "ns1"})

        resp = client.post("/v1/session/open", json={"mode": "logs", "name": "web"})
        assert resp.status_code == 200
        assert resp.json()["logs"] == "hello"

        resp = client.post("/v1/session/close")
        assert resp.json()["logs"] == ""
        assert resp.json()["context"]["mode"] == "none"

    def test_edit(self, respx_mock, client: TestClient):
        doc = "apiVersion: v1\nkind: Pod\n"
        respx_mock.get(url("/pod/ns1/web/yaml")).return_value = Response(200, text=doc)
        client.put("/v1/session", json={"namespace": "ns1"})

        resp = client.post("/v1/session/open", json={"mode": "edit", "name": "web"})
        assert resp.status_code == 200
        ctx = resp.json()["context"]
        assert (ctx["mode"], ctx["manifest"], ctx["frozen"]) == ("edit", doc, True)

    def test_assistant(self, client: TestClient):
        client.post("/v1/session/open", json={"mode": "create", "name": "web"})
        with mock.patch.object(kubedeck.api.Session, "draft") as m_draft:
            m_draft.return_value = kubedeck.api.Outcome(state="Succeeded")
            resp = client.post("/v1/assistant", json={"query": "nginx"})
        assert resp.status_code == 200
        m_draft.assert_called_once_with("nginx")

    def test_cluster_and_nodes(self, respx_mock, client: TestClient):
        m_name = respx_mock.get(url("/cluster-name"))
        m_name.return_value = Response(200, json={"clusterName": "kind-dev"})
        node = {"name": "n1", "cpu": "4", "memory": "8Gi", "status": "Ready"}
        m_nodes = respx_mock.get(url("/node-details"))
        m_nodes.return_value = Response(200, json={"nodes": [node]})

        assert client.get("/v1/cluster").json() == {"clusterName": "kind-dev"}
        assert client.get("/v1/nodes").json() == [node]

        m_name.return_value = Response(500, text="no kubeconfig")
        m_nodes.return_value = Response(500, text="no kubeconfig")
        assert client.get("/v1/cluster").status_code == 502
        assert client.get("/v1/nodes").status_code == 502

    def test_inputs_regenerate_manifest(self, client: TestClient):
        client.post("/v1/session/open", json={"mode": "create", "name": "web"})
        client.put("/v1/session/manifest", json={"manifest": "manual: edit"})

        body = {"name": "api", "kind": "deployment", "image": "busybox"}
        resp = client.put("/v1/session/inputs", json=body)
        assert resp.status_code == 200
        ctx = resp.json()["context"]
        assert ctx["name"] == "api"
        assert (ctx["kind"], ctx["image"]) == ("deployment", "busybox")
        assert ctx["manifest"] == kubedeck.generate.manifest(
            ResourceKind.deployment, "api", "busybox"
        )

    def test_inputs_keep_edit_target(self, respx_mock, client: TestClient):
        doc = "apiVersion: v1\nkind: Pod\n"
        respx_mock.get(url("/pod/ns1/web/yaml")).return_value = Response(200, text=doc)
        client.put("/v1/session", json={"namespace": "ns1"})
        client.post("/v1/session/open", json={"mode": "edit", "name": "web"})

        resp = client.put("/v1/session/inputs", json={"name": "other"})
        assert resp.status_code == 409
        ctx = client.get("/v1/session").json()["context"]
        assert (ctx["name"], ctx["manifest"]) == ("web", doc)

    def test_revision(self, client: TestClient):
        client.put("/v1/session", json={"namespace": "ns1"})
        rev = client.get("/v1/session").json()["revision"]

        session = get_session(client)
        session.store.replace(
            ResourceKind.pod, "ns1", [ResourceSummary(name="web", status="Running")]
        )
        assert client.get("/v1/session").json()["revision"] == rev + 1

    def test_invalid_request_body(self, client: TestClient):
        resp = client.put("/v1/session", json={"wrong": "field"})
        assert resp.status_code == 422
        assert "detail" in resp.json()
