"""
Error taxonomy — every failure the installer can report.

Two families:

    - **User errors** (``user_error = True``): bad flags, unknown accounts,
      missing home directories, failed external commands, timeouts.
      The CLI prints them and exits 1.
    - **Internal errors** (``user_error = False``): drift between a flag
      specification and the code reading it.  Tests assert on these by
      class, never by exit code.

Every error carries a ``hint`` — the next step the operator can take,
or an empty string when none is known.
"""

from __future__ import annotations


class PodstackError(Exception):
    """Root of every error raised by podstack."""

    user_error = True

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return self.message


# ── Arguments ───────────────────────────────────────────────────


class InvalidArgument(PodstackError):
    """A command-line flag is unknown, malformed or missing its value."""

    def __init__(self, message: str, *, usage: str = "", hint: str = "") -> None:
        super().__init__(message, hint=hint or "Run with --help for the list of options.")
        self.usage = usage


class FlagSpecError(PodstackError):
    """A flag specification string cannot be parsed (programming error)."""

    user_error = False


class FlagUsageError(PodstackError):
    """Code reads a flag that its specification never declared (programming error)."""

    user_error = False


# ── Identity ────────────────────────────────────────────────────


class IdentityError(PodstackError):
    """Base for account resolution and privilege failures."""


class UnknownAccount(IdentityError):
    """The named account does not exist in the account database."""


class NoHomeDirectory(IdentityError):
    """The account's home directory is missing or is the filesystem root."""


class InsufficientPrivilege(IdentityError):
    """The operator is root or lacks the elevated-privilege group."""


class SystemAccount(IdentityError):
    """The target account is root or below the rootless uid threshold."""


# ── Mutation ────────────────────────────────────────────────────


class PathEscape(PodstackError):
    """A relative path fragment resolves outside its expected root."""

    def __init__(self, fragment: str, root: str) -> None:
        super().__init__(
            f"Path '{fragment}' escapes {root}",
            hint="Use a path relative to the root without '..' components.",
        )
        self.fragment = fragment
        self.root = root


class ExternalCommandFailed(PodstackError):
    """A collaborator command exited non-zero."""

    def __init__(
        self,
        what: str,
        cmd: list[str],
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
        hint: str = "",
    ) -> None:
        code = f"exit {returncode}" if returncode is not None else "no exit code"
        super().__init__(f"{what} failed ({code}): {' '.join(cmd)}", hint=hint)
        self.what = what
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @classmethod
    def from_result(cls, what: str, cmd: list[str], result: dict, *, hint: str = "") -> ExternalCommandFailed:
        """Build from a ``run_command()`` result dict."""
        return cls(
            what,
            cmd,
            returncode=result.get("returncode"),
            stdout=result.get("stdout", ""),
            stderr=result.get("stderr", "") or result.get("error", ""),
            hint=hint,
        )


# ── Readiness / retry ───────────────────────────────────────────


class Timeout(PodstackError):
    """A readiness poll exceeded its bound."""


class RetriesExhausted(PodstackError):
    """A retried operation failed on every attempt."""


# ── Orchestration ───────────────────────────────────────────────


class PhaseAborted(PodstackError):
    """A fatal-policy phase failed, or the operator declined a gate."""

    def __init__(
        self,
        ordinal: int,
        name: str,
        *,
        target: str = "",
        cause: BaseException | None = None,
        declined: bool = False,
    ) -> None:
        if declined:
            message = f"Aborted by operator before phase {ordinal} ({name})"
        else:
            message = f"Phase {ordinal} ({name}) failed"
            if target:
                message += f" for user '{target}'"
            if cause is not None:
                message += f": {cause}"
        hint = getattr(cause, "hint", "") if cause is not None else ""
        if not hint and not declined:
            hint = "Fix the cause above and re-run; completed phases are safe to repeat."
        super().__init__(message, hint=hint)
        self.ordinal = ordinal
        self.name = name
        self.target = target
        self.cause = cause
        self.declined = declined
