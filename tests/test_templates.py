"""
Tests for container configuration rendering.
"""

import json
import tomllib

import pytest

from podstack.core.services.templates import (
    TemplateError,
    check_unsubstituted,
    document_values,
    render_document,
    render_template,
    validate_output,
    write_documents,
)


class TestRenderPipeline:
    def test_substitutes_known_vars(self):
        assert render_template("a={x} b={y}", {"x": "1", "y": "2"}) == "a=1 b=2"

    def test_leftovers_detected(self):
        rendered = render_template("a={x} b={missing}", {"x": "1"})
        assert check_unsubstituted(rendered) == ["missing"]

    def test_validate_toml(self):
        assert validate_output('a = "b"\n', "toml") is None
        assert "Invalid TOML" in validate_output("a = = b", "toml")

    def test_validate_json(self):
        assert validate_output("{}", "json") is None
        assert "Invalid JSON" in validate_output("{", "json")

    def test_unknown_document(self):
        with pytest.raises(TemplateError):
            render_document("storage.conf", {})

    def test_missing_value_rejected(self, session):
        values = document_values(session)
        del values["crun_path"]
        with pytest.raises(TemplateError, match="crun_path"):
            render_document("containers.conf", values)


class TestDocuments:
    def test_containers_conf(self, session, target):
        conf = tomllib.loads(render_document("containers.conf", document_values(session)))
        assert conf["engine"]["runtime"] == "crun"
        assert conf["engine"]["runtimes"]["crun"] == [str(target.local_bin / "crun")]
        assert conf["engine"]["compose_provider"] == str(target.user_bin / "podman-compose")
        assert conf["network"]["default_rootless_network_cmd"] == "pasta"
        assert "default_subnet" not in conf["network"]

    def test_subnet(self, make_session):
        session = make_session(subnet="10.89.0.0/24")
        conf = tomllib.loads(render_document("containers.conf", document_values(session)))
        assert conf["network"]["default_subnet"] == "10.89.0.0/24"

    def test_policy_json(self, session):
        policy = json.loads(render_document("policy.json", document_values(session)))
        assert policy["default"][0]["type"] == "insecureAcceptAnything"

    def test_write_documents_idempotent(self, session, target):
        assert sorted(write_documents(session)) == ["containers.conf", "policy.json", "registries.conf"]
        assert write_documents(session) == []
        assert (target.config_dir / "registries.conf").exists()
        assert target.config_dir in session.mutator.ledger
