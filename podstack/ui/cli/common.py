"""
Shared plumbing for the install / uninstall / check commands.

Subcommands hand their raw arguments to the flag engine rather than to
click options, so every entry point shares one flag grammar and one
usage format.  The typed flag records below are bound to their flag
sets at import time; a field without a declared flag fails on import.

Injection points (used by tests, via ``CliRunner.invoke(obj=...)``):

    ctx.obj["accounts"]            AccountDatabase replacement
    ctx.obj["capability_factory"]  (operator, target, runtime_dir) → Capability
    ctx.obj["sleep"]               sleep function for polls and retries
    ctx.obj["clock"]               monotonic clock paired with that sleep
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, NoReturn, TypeVar

import click

from podstack.core.errors import InvalidArgument, PodstackError
from podstack.core.flags import FlagRecord, FlagSet, UsageRequested
from podstack.core.identity import AccountDatabase, Identity
from podstack.core.orchestration.orchestrator import Phase, PhaseResult, PhaseStatus, RunReport

logger = logging.getLogger(__name__)

DEFAULT_STACK_USER = "podman_user"

USER_FLAG = "--user|-u:value:Target user"
YES_FLAG = "--yes|-y:boolean:Skip confirmation prompts"
HELP_FLAG = "--help|-h:help:Show this help message"


# ── Flag records ────────────────────────────────────────────────


class ComponentFlags(FlagRecord):
    user: str | None = None
    yes: bool = False


class StackInstallFlags(FlagRecord):
    user: str | None = None
    yes: bool = False
    subnet: str | None = None
    socket_timeout: int | None = None


class StackUninstallFlags(FlagRecord):
    user: str | None = None
    yes: bool = False
    keep_system: bool = False


class CheckFlags(FlagRecord):
    user: str | None = None


def user_flag(default_label: str) -> str:
    return f"{USER_FLAG} (default: {default_label})"


def stack_install_flagset(program: str) -> FlagSet:
    return FlagSet(program, "Build and install the rootless podman stack from source.", [
        user_flag(DEFAULT_STACK_USER),
        YES_FLAG,
        "--subnet|-s:cidr-value:Default network subnet written to containers.conf",
        "--socket-timeout|-t:integer-value:Seconds to wait for the podman socket",
        HELP_FLAG,
    ])


def stack_uninstall_flagset(program: str) -> FlagSet:
    return FlagSet(program, "Remove the rootless podman stack.", [
        user_flag(DEFAULT_STACK_USER),
        YES_FLAG,
        "--keep-system|-k:boolean:Keep system-wide podman, conmon and Go",
        HELP_FLAG,
    ])


def component_flagset(program: str, description: str) -> FlagSet:
    return FlagSet(program, description, [user_flag("current user"), YES_FLAG, HELP_FLAG])


def check_flagset(program: str) -> FlagSet:
    return FlagSet(program, "Report podman permissions and prerequisites.", [
        user_flag("current user"),
        HELP_FLAG,
    ])


R = TypeVar("R", bound=FlagRecord)


def parse_flags(flagset: FlagSet, args: tuple[str, ...], record_cls: type[R]) -> R:
    """Parse or exit: help → exit 0, bad input → exit 1."""
    try:
        return flagset.parse_into(args, record_cls)
    except UsageRequested as e:
        click.echo(e.usage)
        sys.exit(0)
    except InvalidArgument as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        if e.usage:
            click.echo(e.usage, err=True)
        sys.exit(1)


# ── Output ──────────────────────────────────────────────────────


def fail(error: PodstackError) -> NoReturn:
    click.secho(f"❌ {error}", fg="red", err=True)
    if error.hint:
        click.secho(f"   💡 {error.hint}", fg="yellow", err=True)
    sys.exit(1)


def phase_printer(quiet: bool) -> Callable[[Phase, int], None]:
    def on_phase(phase: Phase, total: int) -> None:
        if not quiet:
            click.secho(f"\n▶ [{phase.ordinal}/{total}] {phase.name}", fg="cyan", bold=True)

    return on_phase


_STATUS_STYLE = {
    PhaseStatus.OK: ("✅", "green"),
    PhaseStatus.SKIPPED: ("⏭️ ", "white"),
    PhaseStatus.WARNED: ("⚠️ ", "yellow"),
    PhaseStatus.FAILED: ("❌", "red"),
}


def result_printer(quiet: bool) -> Callable[[PhaseResult], None]:
    def on_result(result: PhaseResult) -> None:
        icon, color = _STATUS_STYLE[result.status]
        if quiet and result.status in (PhaseStatus.OK, PhaseStatus.SKIPPED):
            return
        line = f"   {icon} {result.name}"
        if result.status is PhaseStatus.OK and result.duration_ms:
            line += f" ({result.duration_ms}ms)"
        click.secho(line, fg=color)
        if result.error and result.status is PhaseStatus.WARNED:
            click.echo(f"      │ {result.error}")
            if result.hint:
                click.echo(f"      │ 💡 {result.hint}")

    return on_result


def print_summary(report: RunReport, session_log: Path | None) -> None:
    click.echo()
    if report.completed:
        click.secho(f"✅ {report.title} completed for {report.target}", fg="green", bold=True)
    for warning in report.warnings:
        click.secho(f"   ⚠️  {warning}", fg="yellow")
    for note in report.notes:
        click.secho(f"   ℹ️  {note}", fg="cyan")
    if session_log:
        click.echo(f"   📄 Session log: {session_log}")


def confirm_gate(message: str) -> bool:
    return click.confirm(message, default=False)


def accounts_from(ctx: click.Context) -> AccountDatabase:
    return ctx.obj.get("accounts") or AccountDatabase()


def capability_from(ctx: click.Context, operator: Identity, target: Identity, runtime_dir: Path):
    factory = ctx.obj.get("capability_factory")
    if factory is not None:
        return factory(operator, target, runtime_dir)
    from podstack.core.privilege.capability import SudoCapability

    return SudoCapability(operator, target, runtime_dir=runtime_dir)


# ── Running a phase list ────────────────────────────────────────


def execute_run(
    ctx: click.Context,
    *,
    title: str,
    build_phases: Callable[[], list[Phase]],
    user: str | None,
    default_to_operator: bool,
    assume_yes: bool = False,
    subnet: str | None = None,
    socket_timeout: int | None = None,
    keep_system: bool = False,
) -> RunReport:
    """Resolve config and identities, then run the phases.

    Every identity and config error is raised before the first phase,
    so a rejected invocation changes nothing on the host.
    """
    from podstack.core.config.loader import load_config
    from podstack.core.context import RunContext, Session
    from podstack.core.identity import assert_operator_privilege, resolve_identity
    from podstack.core.observability.logging_config import attach_session_log, detach_session_log
    from podstack.core.orchestration.orchestrator import PhaseOrchestrator
    from podstack.core.privilege.mutator import Mutator

    quiet = ctx.obj.get("quiet", False)
    try:
        config = load_config(ctx.obj.get("config_path"))
        accounts = accounts_from(ctx)
        operator = assert_operator_privilege(accounts=accounts, group=config.privileged_group)
        target_name = user or (operator.name if default_to_operator else DEFAULT_STACK_USER)
        target = resolve_identity(target_name, accounts=accounts, min_uid=config.min_target_uid)

        log_dir = config.log_dir or operator.home / ".local" / "state" / "podstack" / "logs"
        session_log = attach_session_log(log_dir)

        run_ctx = RunContext(
            target=target,
            operator=operator,
            config=config,
            assume_yes=assume_yes,
            subnet=subnet,
            socket_timeout=socket_timeout,
            keep_system=keep_system,
            session_log=session_log,
        )
        cap = capability_from(ctx, operator, target, run_ctx.runtime_dir)
        session = Session(run_ctx, Mutator(cap, target))
        if "sleep" in ctx.obj:
            session.sleep = ctx.obj["sleep"]
        if "clock" in ctx.obj:
            session.clock = ctx.obj["clock"]

        if not quiet:
            click.secho(f"🚀 {title} for user '{target.name}' (uid {target.uid})", fg="cyan", bold=True)

        orchestrator = PhaseOrchestrator(
            session,
            confirm=confirm_gate,
            on_phase=phase_printer(quiet),
            on_result=result_printer(quiet),
        )
        try:
            report = orchestrator.run(build_phases(), title=title)
        finally:
            detach_session_log()

        print_summary(report, session_log)
        report.raise_for_status()
        return report
    except PodstackError as e:
        fail(e)
