"""Tests for the sidecar transform"""

import copy

import pytest
import yaml

from components import sidecar
from components.errors import ConfigShapeError, InvariantViolationError, NameCollisionError

DOMAINS_PATH = (
    "static_resources",
    "listeners",
    0,
    "filter_chains",
    0,
    "filters",
    0,
    "config",
    "route_config",
    "virtual_hosts",
    0,
    "domains",
)


def _at(document, path):
    for step in path:
        document = document[step]
    return document


def _nginx_spec():
    return {
        "selector": {},
        "replicas": 1,
        "template": {
            "spec": {
                "containers": [
                    {
                        "name": "nginx",
                        "image": "nginx:1.7.9",
                        "ports": [{"containerPort": 80}],
                    }
                ],
                "volumes": [],
            },
        },
    }


def _inject(spec):
    return sidecar.inject(spec, "nginx", {"app": "nginx"}, "sidecar", "wildcard-certificate")


@pytest.fixture
def template():
    return sidecar.load_sidecar_template()


def _two_listener_template():
    def listener(name, host):
        return {
            "name": name,
            "filter_chains": [
                {
                    "filters": [
                        {
                            "name": "envoy.http_connection_manager",
                            "config": {
                                "route_config": {
                                    "virtual_hosts": [
                                        {"name": host, "domains": ["*"]},
                                        {"name": f"{host}-2", "domains": ["*"]},
                                    ]
                                }
                            },
                        }
                    ]
                }
            ],
        }

    return {"static_resources": {"listeners": [listener("first", "a"), listener("second", "b")]}}


class TestLoadSidecarTemplate:
    def test_packaged_template_has_target_path(self, template):
        assert _at(template, DOMAINS_PATH) == ["*"]

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigShapeError):
            sidecar.load_sidecar_template(path)


class TestRewriteDomains:
    def test_replaces_only_target_domains(self, template):
        rewritten = sidecar.rewrite_domains(template, ["nginx.internal.example.com", "nginx.example.com"])
        assert _at(rewritten, DOMAINS_PATH) == ["nginx.internal.example.com", "nginx.example.com"]
        expected = copy.deepcopy(template)
        _at(expected, DOMAINS_PATH[:-1])["domains"] = ["nginx.internal.example.com", "nginx.example.com"]
        assert rewritten == expected

    def test_does_not_mutate_template(self, template):
        before = copy.deepcopy(template)
        sidecar.rewrite_domains(template, ["a.example.com"])
        assert template == before

    def test_idempotent(self, template):
        once = sidecar.rewrite_domains(template, ["a.example.com", "b.example.com"])
        twice = sidecar.rewrite_domains(once, ["a.example.com", "b.example.com"])
        assert once == twice

    def test_empty_domains(self, template):
        with pytest.raises(ValueError):
            sidecar.rewrite_domains(template, [])

    def test_zero_listeners(self):
        with pytest.raises(ConfigShapeError):
            sidecar.rewrite_domains({"static_resources": {"listeners": []}}, ["a.example.com"])

    def test_missing_static_resources(self):
        with pytest.raises(ConfigShapeError):
            sidecar.rewrite_domains({"admin": {}}, ["a.example.com"])

    def test_missing_filter_config(self, template):
        broken = copy.deepcopy(template)
        del broken["static_resources"]["listeners"][0]["filter_chains"][0]["filters"][0]["config"]
        with pytest.raises(ConfigShapeError):
            sidecar.rewrite_domains(broken, ["a.example.com"])

    def test_first_listener_and_host_by_default(self):
        rewritten = sidecar.rewrite_domains(_two_listener_template(), ["x.example.com"])
        first, second = rewritten["static_resources"]["listeners"]
        hosts = first["filter_chains"][0]["filters"][0]["config"]["route_config"]["virtual_hosts"]
        assert hosts[0]["domains"] == ["x.example.com"]
        assert hosts[1]["domains"] == ["*"]
        other = second["filter_chains"][0]["filters"][0]["config"]["route_config"]["virtual_hosts"]
        assert [h["domains"] for h in other] == [["*"], ["*"]]

    def test_named_listener_and_virtual_host(self):
        rewritten = sidecar.rewrite_domains(
            _two_listener_template(),
            ["x.example.com"],
            listener_name="second",
            virtual_host_name="b-2",
        )
        first, second = rewritten["static_resources"]["listeners"]
        hosts = second["filter_chains"][0]["filters"][0]["config"]["route_config"]["virtual_hosts"]
        assert [h["domains"] for h in hosts] == [["*"], ["x.example.com"]]
        untouched = first["filter_chains"][0]["filters"][0]["config"]["route_config"]["virtual_hosts"]
        assert [h["domains"] for h in untouched] == [["*"], ["*"]]

    def test_unknown_listener_name(self, template):
        with pytest.raises(ConfigShapeError):
            sidecar.rewrite_domains(template, ["a.example.com"], listener_name="missing")

    def test_filter_that_is_not_a_mapping(self):
        document = _two_listener_template()
        document["static_resources"]["listeners"][0]["filter_chains"][0]["filters"] = ["envoy.router"]
        with pytest.raises(ConfigShapeError):
            sidecar.rewrite_domains(document, ["a.example.com"])

    def test_virtual_host_that_is_not_a_mapping(self):
        document = _two_listener_template()
        hcm = document["static_resources"]["listeners"][0]["filter_chains"][0]["filters"][0]
        hcm["config"]["route_config"]["virtual_hosts"] = ["app"]
        with pytest.raises(ConfigShapeError):
            sidecar.rewrite_domains(document, ["a.example.com"])

    def test_filter_without_any_config(self):
        document = _two_listener_template()
        del document["static_resources"]["listeners"][0]["filter_chains"][0]["filters"][0]["config"]
        with pytest.raises(ConfigShapeError, match="typed_config"):
            sidecar.rewrite_domains(document, ["a.example.com"])

    def test_domains_given_as_string(self, template):
        with pytest.raises(ValueError):
            sidecar.rewrite_domains(template, "a.example.com")

    def test_typed_config(self):
        document = _two_listener_template()
        hcm = document["static_resources"]["listeners"][0]["filter_chains"][0]["filters"][0]
        hcm["typed_config"] = hcm.pop("config")
        rewritten = sidecar.rewrite_domains(document, ["x.example.com"])
        hcm = rewritten["static_resources"]["listeners"][0]["filter_chains"][0]["filters"][0]
        assert hcm["typed_config"]["route_config"]["virtual_hosts"][0]["domains"] == ["x.example.com"]


class TestSidecarConfigData:
    def test_keys_and_rendered_domains(self, template):
        data = sidecar.sidecar_config_data(template, "nginx.internal.example.com", "nginx.example.com", "PEM")
        assert set(data) == {"sidecar.yaml", "cloudflare-ca.pem"}
        assert data["cloudflare-ca.pem"] == "PEM"
        rendered = yaml.safe_load(data["sidecar.yaml"])
        assert _at(rendered, DOMAINS_PATH) == ["nginx.internal.example.com", "nginx.example.com"]

    def test_rendering_is_deterministic(self, template):
        first = sidecar.render_sidecar_config(template, "a.example.com", "b.example.com")
        second = sidecar.render_sidecar_config(template, "a.example.com", "b.example.com")
        assert first == second


class TestInject:
    def test_nginx_example(self):
        augmented = _inject(_nginx_spec())
        pod = augmented["template"]["spec"]

        assert [c["name"] for c in pod["containers"]] == ["nginx", "envoy"]
        assert pod["containers"][0] == _nginx_spec()["template"]["spec"]["containers"][0]
        envoy = pod["containers"][1]
        assert envoy["image"] == "envoyproxy/envoy:v1.12.2"
        assert envoy["ports"] == [{"containerPort": 443, "protocol": "TCP"}]
        assert [m["name"] for m in envoy["volumeMounts"]] == ["envoy-conf", "cert"]

        assert pod["volumes"] == [
            {"name": "envoy-conf", "configMap": {"name": "sidecar"}},
            {"name": "cert", "secret": {"secretName": "wildcard-certificate"}},
        ]

    def test_sets_selector_and_pod_labels(self):
        spec = _nginx_spec()
        spec["selector"] = {"matchLabels": {"old": "label"}}
        spec["template"]["metadata"] = {"labels": {"old": "label"}, "annotations": {"a": "b"}}
        augmented = _inject(spec)
        assert augmented["selector"] == {"matchLabels": {"app": "nginx"}}
        assert augmented["template"]["metadata"]["labels"] == {"app": "nginx"}
        assert augmented["template"]["metadata"]["annotations"] == {"a": "b"}

    def test_preserves_caller_containers_and_volumes(self):
        spec = _nginx_spec()
        spec["template"]["spec"]["containers"].append({"name": "worker", "image": "busybox"})
        spec["template"]["spec"]["volumes"].append({"name": "data", "secret": {"secretName": "data"}})
        augmented = _inject(spec)
        pod = augmented["template"]["spec"]
        assert pod["containers"][:2] == spec["template"]["spec"]["containers"]
        assert pod["volumes"][:1] == spec["template"]["spec"]["volumes"]
        assert len(pod["containers"]) == 3
        assert len(pod["volumes"]) == 3

    def test_does_not_mutate_input(self):
        spec = _nginx_spec()
        before = copy.deepcopy(spec)
        _inject(spec)
        assert spec == before

    def test_creates_missing_lists(self):
        augmented = _inject({"template": {}})
        pod = augmented["template"]["spec"]
        assert [c["name"] for c in pod["containers"]] == ["envoy"]
        assert [v["name"] for v in pod["volumes"]] == ["envoy-conf", "cert"]

    @pytest.mark.parametrize(
        "pod",
        [
            None,
            {"containers": None, "volumes": None},
            {"containers": [{"name": "nginx", "image": "nginx:1.7.9"}], "volumes": None},
        ],
    )
    def test_null_lists_count_as_empty(self, pod):
        augmented = _inject({"template": {"spec": pod}})
        names = [c["name"] for c in augmented["template"]["spec"]["containers"]]
        assert names[-1] == "envoy"
        assert [v["name"] for v in augmented["template"]["spec"]["volumes"]] == ["envoy-conf", "cert"]

    def test_deterministic(self):
        first = yaml.safe_dump(_inject(_nginx_spec()))
        second = yaml.safe_dump(_inject(_nginx_spec()))
        assert first == second

    def test_container_named_envoy(self):
        spec = _nginx_spec()
        spec["template"]["spec"]["containers"].append({"name": "envoy", "image": "envoy"})
        with pytest.raises(NameCollisionError):
            _inject(spec)

    @pytest.mark.parametrize("volume", ["envoy-conf", "cert"])
    def test_reserved_volume_name(self, volume):
        spec = _nginx_spec()
        spec["template"]["spec"]["volumes"].append({"name": volume, "configMap": {"name": "x"}})
        with pytest.raises(NameCollisionError):
            _inject(spec)

    def test_missing_template(self):
        with pytest.raises(InvariantViolationError):
            _inject({"replicas": 1})

    def test_empty_name(self):
        with pytest.raises(InvariantViolationError):
            sidecar.inject(_nginx_spec(), "", {"app": "nginx"}, "sidecar", "cert")

    def test_dangling_volume_mount(self):
        spec = _nginx_spec()
        spec["template"]["spec"]["containers"][0]["volumeMounts"] = [{"name": "missing", "mountPath": "/x"}]
        with pytest.raises(InvariantViolationError):
            _inject(spec)


class TestValidatePodSpec:
    def test_duplicate_container_names(self):
        pod = {"containers": [{"name": "a"}, {"name": "a"}]}
        with pytest.raises(InvariantViolationError):
            sidecar.validate_pod_spec(pod)

    def test_duplicate_volume_names(self):
        pod = {"containers": [], "volumes": [{"name": "v"}, {"name": "v"}]}
        with pytest.raises(InvariantViolationError):
            sidecar.validate_pod_spec(pod)

    def test_valid_pod(self):
        pod = {
            "containers": [{"name": "a", "volumeMounts": [{"name": "v", "mountPath": "/v"}]}],
            "volumes": [{"name": "v"}],
        }
        sidecar.validate_pod_spec(pod)


class TestPlanExposure:
    def test_nginx_example(self):
        exposure = sidecar.plan_exposure(_inject(_nginx_spec()))
        assert exposure.selector == {"app": "nginx"}
        assert exposure.ports == (sidecar.ServicePort(name="envoy", port=443, protocol="TCP"),)

    def test_selector_matches_injected_labels(self):
        labels = {"app": "api", "tier": "backend"}
        augmented = sidecar.inject(_nginx_spec(), "api", labels, "sidecar", "cert")
        exposure = sidecar.plan_exposure(augmented)
        assert exposure.selector == augmented["template"]["metadata"]["labels"] == labels
        assert exposure.selector == augmented["selector"]["matchLabels"]

    def test_without_injection(self):
        with pytest.raises(InvariantViolationError):
            sidecar.plan_exposure(_nginx_spec())

    def test_service_spec(self):
        spec = sidecar.plan_exposure(_inject(_nginx_spec())).service_spec()
        assert spec == {
            "type": "LoadBalancer",
            "ports": [{"name": "envoy", "port": 443, "protocol": "TCP"}],
            "selector": {"app": "nginx"},
        }
