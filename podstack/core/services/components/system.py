"""
Host-level phases that are not tied to one component: package
cleanup, build dependencies, linger, the podman socket, the smoke
test and the shell PATH line.
"""

from __future__ import annotations

import logging
from pathlib import Path

from podstack.core.context import Session
from podstack.core.errors import PodstackError
from podstack.core.orchestration.orchestrator import FailurePolicy, Phase
from podstack.core.reliability.polling import require_ready
from podstack.core.services import probes
from podstack.core.services.components.common import remove_paths, run_best_effort, run_checked

logger = logging.getLogger(__name__)

# Packages that shadow the source-built stack
CONFLICTING_PACKAGES = (
    "podman", "buildah", "crun", "conmon", "containernetworking-plugins",
    "containers-common", "golang-github-containers-common",
    "golang-github-containers-image", "catatonit", "libsubid4", "libyajl2",
    "pigz", "uidmap", "passt", "slirp4netns", "docker-ce", "docker-ce-cli",
    "docker-buildx-plugin", "docker-ce-rootless-extras",
    "docker-compose-plugin", "golang-go",
)

BUILD_DEPENDENCIES = (
    "git", "make", "gcc", "build-essential", "pkg-config", "pkgconf",
    "libsystemd-dev", "libgpgme-dev", "libseccomp-dev", "libbtrfs-dev",
    "libdevmapper-dev", "libyajl-dev", "libcap-dev", "autotools-dev",
    "autoconf", "automake", "libtool", "go-md2man", "libglib2.0-dev",
    "uidmap", "curl", "python3",
)

BUILD_COMPONENTS = ("crun", "passt", "conmon", "podman")

SOCKET_UNIT = "podman.socket"
SERVICE_UNIT = "podman.service"
SMOKE_IMAGE = "docker.io/library/alpine"
SMOKE_CONTAINER = "podstack-smoke"

PATH_MARKER = "# Added by podstack"

_PROC_MOUNTS = Path("/proc/mounts")


def path_line(session: Session) -> str:
    prefix = session.ctx.prefix
    return f'export PATH="{prefix}/bin:$HOME/.local/bin:$HOME/bin:$PATH:{prefix}/go/bin"'


def runtime_dir_line(session: Session) -> str:
    return f'export XDG_RUNTIME_DIR="{session.config.runtime_root}/$(id -u)"'


def _is_managed_rc_line(line: str) -> bool:
    stripped = line.strip()
    if stripped == PATH_MARKER or stripped.startswith("export XDG_RUNTIME_DIR="):
        return True
    return stripped.startswith("export PATH=") and ("/.local/bin" in stripped or "/go/bin" in stripped)


def installed_packages(session: Session, names: tuple[str, ...]) -> list[str]:
    """Subset of ``names`` that dpkg reports as installed."""
    installed = []
    for name in names:
        result = session.cap.run(["dpkg-query", "-W", "-f=${Status}", name], timeout=30)
        if result["ok"] and "install ok installed" in result.get("stdout", ""):
            installed.append(name)
    return installed


def stop_user_services(session: Session) -> None:
    for unit in (SOCKET_UNIT, SERVICE_UNIT):
        run_best_effort(session, f"stop {unit}", ["systemctl", "--user", "stop", unit], as_target=True)


# ── Install bodies ──────────────────────────────────────────────


def cleanup_previous(session: Session) -> None:
    """Stop the old socket, purge conflicting packages, drop old checkouts."""
    stop_user_services(session)

    present = installed_packages(session, CONFLICTING_PACKAGES)
    if present:
        logger.info("Removing conflicting packages: %s", ", ".join(present))
        run_best_effort(
            session, "apt-get remove",
            ["apt-get", "remove", "--purge", "-y", *present], elevate=True, timeout=900,
        )
        run_best_effort(session, "apt-get autoremove", ["apt-get", "autoremove", "-y"], elevate=True, timeout=900)

    remove_paths(session, [session.config.build_path(c) for c in BUILD_COMPONENTS])


def install_dependencies(session: Session) -> None:
    env = {"DEBIAN_FRONTEND": "noninteractive"}
    run_checked(session, "apt-get update", ["apt-get", "update"], elevate=True, env=env, timeout=900)
    run_checked(
        session, "install build dependencies",
        ["apt-get", "install", "-y", *BUILD_DEPENDENCIES],
        elevate=True, env=env, timeout=1800,
        hint="Check the package names against your distribution release.",
    )


def enable_linger(session: Session) -> None:
    """Keep the target's user manager alive and make sure its runtime dir exists."""
    target = session.target
    run_checked(session, "enable linger", ["loginctl", "enable-linger", target.name], elevate=True)
    runtime_dir = session.ctx.runtime_dir
    session.mutator.ensure_dir(runtime_dir, mode=0o700)
    session.mutator.chown(runtime_dir)


def start_socket(session: Session) -> None:
    """Enable the user socket; readiness is judged by polling only."""
    run_best_effort(session, "daemon-reload", ["systemctl", "--user", "daemon-reload"], as_target=True)
    run_best_effort(
        session, f"enable {SOCKET_UNIT}",
        ["systemctl", "--user", "enable", "--now", SOCKET_UNIT], as_target=True,
    )
    condition = session.ctx.poll(
        probes.user_unit_active(session.cap, SOCKET_UNIT),
        timeout=session.ctx.effective_socket_timeout,
        description=f"{SOCKET_UNIT} for {session.target.name}",
    )
    require_ready(condition, sleep=session.sleep, clock=session.clock)


def smoke_test(session: Session) -> None:
    """Run a throwaway container, then one with a healthcheck."""
    readiness = session.config.readiness
    run_checked(
        session, "podman smoke test",
        ["podman", "run", "--rm", SMOKE_IMAGE, "echo", "podstack-ok"],
        as_target=True, timeout=600,
        hint="Check network access to docker.io and the rootless setup (subuid/subgid).",
    )

    run_best_effort(session, "remove old smoke container", ["podman", "rm", "-f", SMOKE_CONTAINER], as_target=True)
    try:
        run_checked(
            session, "start healthcheck container",
            [
                "podman", "run", "-d", "--name", SMOKE_CONTAINER,
                "--health-cmd", "true", "--health-interval", "2s",
                SMOKE_IMAGE, "sleep", "300",
            ],
            as_target=True, timeout=300,
        )
        require_ready(
            session.ctx.poll(
                probes.container_running(session.cap, SMOKE_CONTAINER),
                timeout=readiness.running_timeout,
                description=f"container {SMOKE_CONTAINER} running",
            ),
            sleep=session.sleep, clock=session.clock,
        )
        run_best_effort(session, "trigger healthcheck", ["podman", "healthcheck", "run", SMOKE_CONTAINER], as_target=True)
        require_ready(
            session.ctx.poll(
                probes.container_healthy(session.cap, SMOKE_CONTAINER),
                timeout=readiness.healthy_timeout,
                description=f"container {SMOKE_CONTAINER} healthy",
            ),
            sleep=session.sleep, clock=session.clock,
        )
    finally:
        run_best_effort(session, "remove smoke container", ["podman", "rm", "-f", SMOKE_CONTAINER], as_target=True)


def consolidate_path(session: Session) -> None:
    """Replace scattered PATH and XDG_RUNTIME_DIR exports in ~/.bashrc with managed lines."""
    bashrc = session.mutator.home_path(".bashrc")
    changed = session.mutator.rewrite_lines(
        bashrc, drop=_is_managed_rc_line, append=[PATH_MARKER, path_line(session), runtime_dir_line(session)],
    )
    if changed:
        session.note(f"PATH updated in {bashrc}; open a new shell or run: source ~/.bashrc")


# ── Uninstall bodies ────────────────────────────────────────────


def stop_services(session: Session) -> None:
    stop_user_services(session)
    run_best_effort(session, f"disable {SOCKET_UNIT}", ["systemctl", "--user", "disable", SOCKET_UNIT], as_target=True)
    run_best_effort(session, "disable linger", ["loginctl", "disable-linger", session.target.name], elevate=True)


def storage_path(session: Session) -> Path:
    return session.mutator.home_path(".local/share/containers")


def cleanup_storage(session: Session) -> None:
    """Unmount leftover overlays and make the storage removable."""
    storage = storage_path(session)
    mounts = session.cap.read_text(_PROC_MOUNTS) or ""
    prefix = str(storage) + "/"
    targets = [
        fields[1]
        for fields in (ln.split() for ln in mounts.splitlines())
        if len(fields) > 1 and fields[1].startswith(prefix)
    ]
    for mountpoint in sorted(targets, key=len, reverse=True):
        run_best_effort(session, f"unmount {mountpoint}", ["umount", "-l", mountpoint], elevate=True)

    if session.cap.is_dir(storage):
        session.mutator.chown(storage, recursive=True)
        run_checked(session, "make storage writable", ["chmod", "-R", "u+w", str(storage)], elevate=True, timeout=600)


def remove_user_data(session: Session) -> None:
    """Config, storage, runtime state and the managed ~/.bashrc lines."""
    m = session.mutator
    runtime_dir = session.ctx.runtime_dir
    remove_paths(session, [
        m.home_path(".config/containers"),
        storage_path(session),
        runtime_dir / "containers",
        runtime_dir / "podman",
    ])
    m.remove_lines(m.home_path(".bashrc"), _is_managed_rc_line)
    for directory in (session.target.local_bin, session.target.user_bin, m.home_path(".local/share/man/man1")):
        m.remove_empty_dir(directory)


def remove_build_artifacts(session: Session) -> None:
    config = session.config
    remove_paths(session, [config.build_path(c) for c in BUILD_COMPONENTS] + [
        config.build_dir / f"go{config.versions.go}.tar.gz",
        config.build_dir / "podman-compose.py",
    ])


def verify_removal(session: Session) -> None:
    """Warn about anything the uninstall left behind."""
    target, prefix = session.target, session.ctx.prefix
    candidates = [
        target.local_bin / "crun",
        target.local_bin / "passt",
        target.local_bin / "pasta",
        target.user_bin / "podman-compose",
        prefix / "bin" / "podman-compose",
    ]
    if not session.ctx.keep_system:
        candidates += [prefix / "bin" / "podman", prefix / "bin" / "conmon"]
    leftovers = [str(p) for p in candidates if session.cap.exists(p)]
    if leftovers:
        raise PodstackError(
            f"Uninstall left files behind for '{target.name}': {', '.join(leftovers)}",
            hint="Remove them manually or re-run the uninstall.",
        )


# ── Phase builders ──────────────────────────────────────────────


def cleanup_phase() -> Phase:
    return Phase("Clean up previous installation", cleanup_previous, FailurePolicy.WARN, gate=True)


def dependencies_phase() -> Phase:
    return Phase("Install build dependencies", install_dependencies)


def runtime_phases() -> list[Phase]:
    """Linger, socket, smoke test — run once the binaries exist."""
    return [
        Phase("Enable linger and runtime directory", enable_linger, FailurePolicy.WARN),
        Phase("Start podman socket", start_socket),
        Phase("Smoke test", smoke_test, FailurePolicy.WARN),
    ]


def path_phase() -> Phase:
    return Phase("Consolidate PATH", consolidate_path)


def stop_services_phase() -> Phase:
    return Phase("Stop services and disable linger", stop_services, FailurePolicy.WARN, gate=True)


def teardown_phases() -> list[Phase]:
    """Storage, user data, build dirs, verification."""
    return [
        Phase("Clean up container storage", cleanup_storage, FailurePolicy.WARN),
        Phase("Remove user data and shell settings", remove_user_data),
        Phase("Remove build artifacts", remove_build_artifacts, FailurePolicy.WARN),
        Phase("Verify removal", verify_removal, FailurePolicy.WARN),
    ]
