"""Runtime settings read from GitHub Actions inputs."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

from weighted_approvals.directives import parse_trusted_associations
from weighted_approvals.engine import DecisionOptions

DEFAULT_CONFIG_PATH = ".github/weighted-approvals.yml"
DEFAULT_CHECK_NAME = "weighted-approvals"
DEFAULT_LABEL_PREFIX = "wa:+"
DEFAULT_DIRECTIVE_PREFIX = "ma:"
DEFAULT_TRUSTED_ASSOCIATIONS = "OWNER,MEMBER,COLLABORATOR"

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}


class SettingsError(RuntimeError):
    """Raised when required runtime settings are missing."""


@dataclass(frozen=True)
class ActionSettings:
    """Inputs of one check run.

    Attributes:
        token: GitHub token used for every API call.
        config_path: Policy file path, read from the PR base commit.
        check_name: Name of the published check run.
        label_prefix: Prefix of ``<prefix>N`` required-total labels.
        comment_directive_prefix: Prefix of ``ma:`` comment directives.
        comment_trusted_author_associations: Comma-separated trusted associations.
        fail_on_error: Exit non-zero when the run raises.
        debug: Enable debug logging.
    """

    token: str = ""
    config_path: str = DEFAULT_CONFIG_PATH
    check_name: str = DEFAULT_CHECK_NAME
    label_prefix: str = DEFAULT_LABEL_PREFIX
    comment_directive_prefix: str = DEFAULT_DIRECTIVE_PREFIX
    comment_trusted_author_associations: str = DEFAULT_TRUSTED_ASSOCIATIONS
    fail_on_error: bool = True
    debug: bool = False

    def decision_options(self) -> DecisionOptions:
        """Return the engine options these settings describe."""

        return DecisionOptions(
            label_prefix=self.label_prefix,
            directive_prefix=self.comment_directive_prefix,
            trusted_associations=parse_trusted_associations(
                self.comment_trusted_author_associations
            ),
        )


def to_bool(value: str | None, default: bool) -> bool:
    """Interpret an action input as a boolean; empty means ``default``."""

    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def load_settings(environ: Mapping[str, str] | None = None) -> ActionSettings:
    """Load settings from ``INPUT_<NAME>`` variables.

    Values are trimmed and empty values fall back to the defaults. The token
    is not required here; :func:`require_token` checks it for live runs.

    Args:
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        Parsed settings.
    """

    env = os.environ if environ is None else environ

    def text(name: str, default: str) -> str:
        value = env.get(f"INPUT_{name.upper()}", "").strip()
        return value or default

    return ActionSettings(
        token=text("token", ""),
        config_path=text("config_path", DEFAULT_CONFIG_PATH),
        check_name=text("check_name", DEFAULT_CHECK_NAME),
        label_prefix=text("label_prefix", DEFAULT_LABEL_PREFIX),
        comment_directive_prefix=text("comment_directive_prefix", DEFAULT_DIRECTIVE_PREFIX),
        comment_trusted_author_associations=text(
            "comment_trusted_author_associations", DEFAULT_TRUSTED_ASSOCIATIONS
        ),
        fail_on_error=to_bool(env.get("INPUT_FAIL_ON_ERROR"), True),
        debug=to_bool(env.get("INPUT_DEBUG"), False),
    )


def require_token(settings: ActionSettings) -> ActionSettings:
    """Return ``settings`` unchanged, or raise if no token is configured.

    Raises:
        SettingsError: If ``token`` is empty.
    """

    if not settings.token:
        raise SettingsError("Input required and not supplied: token")
    return settings


def update_config_path(settings: ActionSettings, config_path: str) -> ActionSettings:
    """Return a copy of ``settings`` reading the policy from ``config_path``."""

    return replace(settings, config_path=config_path)
