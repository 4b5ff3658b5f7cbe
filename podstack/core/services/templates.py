"""
Template rendering for the container configuration documents.

Pipeline: render ``{var}`` placeholders → reject leftovers → validate
the output format → hand the text to the mutator.
"""

from __future__ import annotations

import json
import logging
import re
import tomllib

from podstack.core.context import Session
from podstack.core.data.templates import DOCUMENTS
from podstack.core.errors import PodstackError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)\}")


class TemplateError(PodstackError):
    """A rendered document has unresolved variables or invalid syntax."""


def render_template(template: str, values: dict[str, str]) -> str:
    """Substitute ``{var}`` placeholders.  Unknown braces are left alone."""
    result = template
    for key, value in values.items():
        result = result.replace(f"{{{key}}}", str(value))
    return result


def check_unsubstituted(rendered: str) -> list[str]:
    """Names of ``{var}`` placeholders still present."""
    return _PLACEHOLDER.findall(rendered)


def validate_output(content: str, fmt: str) -> str | None:
    """Error message if ``content`` is not valid ``fmt``, else None."""
    if fmt == "json":
        try:
            json.loads(content)
        except json.JSONDecodeError as exc:
            return f"Invalid JSON: {exc}"
    elif fmt == "toml":
        try:
            tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            return f"Invalid TOML: {exc}"
    return None


def document_values(session: Session) -> dict[str, str]:
    """Placeholder values for the target account."""
    target = session.target
    network_extra = ""
    if session.ctx.subnet:
        network_extra = f'default_subnet = "{session.ctx.subnet}"\n'
    return {
        "local_bin": str(target.local_bin),
        "crun_path": str(target.local_bin / "crun"),
        "pasta_path": str(target.local_bin / "pasta"),
        "compose_provider": str(target.user_bin / "podman-compose"),
        "prefix": str(session.ctx.prefix),
        "network_extra": network_extra,
    }


def render_document(name: str, values: dict[str, str]) -> str:
    """Render and validate one of the known documents.

    Raises:
        TemplateError: Unknown document, unresolved variable or bad syntax.
    """
    if name not in DOCUMENTS:
        raise TemplateError(f"Unknown configuration document: {name}")
    template, fmt = DOCUMENTS[name]
    rendered = render_template(template, values)

    unresolved = check_unsubstituted(rendered) if fmt != "json" else []
    if unresolved:
        raise TemplateError(
            f"Unresolved template variables in {name}: {', '.join(f'{{{v}}}' for v in unresolved)}"
        )

    err = validate_output(rendered, fmt)
    if err:
        raise TemplateError(f"{name} failed validation: {err}")
    return rendered


def write_documents(session: Session) -> list[str]:
    """Write every document under ~/.config/containers.

    Returns:
        Names of the documents whose content changed.
    """
    values = document_values(session)
    config_dir = session.mutator.home_path(".config/containers")
    session.mutator.ensure_dir(config_dir)

    changed = []
    for name in DOCUMENTS:
        content = render_document(name, values)
        if session.mutator.write_file(config_dir / name, content):
            changed.append(name)
    if changed:
        logger.info("Updated %s in %s", ", ".join(changed), config_dir)
    return changed
