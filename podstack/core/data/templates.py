"""
Container configuration documents written under ~/.config/containers.

``{var}`` placeholders are filled by ``podstack.core.services.templates``.
"""

from __future__ import annotations

CONTAINERS_CONF = """\
# Managed by podstack. Rewritten on every install.

[engine]
runtime = "crun"
cgroup_manager = "cgroupfs"
compose_provider = "{compose_provider}"
compose_warning_logs = false
helper_binaries_dir = [
  "{local_bin}",
  "/usr/lib/podman",
  "{prefix}/libexec/podman",
]

[engine.runtimes]
crun = ["{crun_path}"]

[network]
default_rootless_network_cmd = "pasta"
network_cmd_path = "{pasta_path}"
{network_extra}"""

REGISTRIES_CONF = """\
# Managed by podstack.

[registries.search]
registries = ['docker.io']
"""

POLICY_JSON = """\
{
    "default": [
        {
            "type": "insecureAcceptAnything"
        }
    ]
}
"""

# name → (template, format)
DOCUMENTS: dict[str, tuple[str, str]] = {
    "containers.conf": (CONTAINERS_CONF, "toml"),
    "registries.conf": (REGISTRIES_CONF, "toml"),
    "policy.json": (POLICY_JSON, "json"),
}
