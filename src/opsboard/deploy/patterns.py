"""
Deployment log pattern catalog.

Deployment transcripts come from several backends and are only loosely
structured:

- git: "git clone https://git.example.com/team/app.git"
- docker compose: "docker login", "sed -i ... docker-compose.yml",
  "docker-compose pull", "docker-compose down && docker-compose up -d",
  "docker compose ps"
- kubectl: "kubectl create namespace", "kubectl create secret docker-registry",
  "find /tmp/app_apply -name '*.yaml' | xargs -n1 kubectl apply -f",
  "kubectl describe pod", "kubectl rollout restart", "rm -rf /tmp/app_apply"

Recognition is table driven. Each ``PatternRule`` pairs a predicate over a
``LogEntry`` with a handler that records what the entry means. Every rule
whose predicate matches fires, in table order, so one command line can
produce more than one step (e.g. a pull followed by an up).

The table itself is code, but the user-facing parts are data: step labels,
the timeout markers and the inert-read markers can be overridden from a
JSON file, and extra rules can be appended for other backends:

    {
        "labels": {"source_checkout": "Clone repository"},
        "timeout_markers": ["timeout", "timed out", "deadline exceeded"],
        "inert_commands": ["cat docker-compose", "cat values.yaml"],
        "inert_outputs": ["Docker Compose file updated successfully"],
        "disabled_rules": ["cleanup"]
    }
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from opsboard.deploy.logs import LogEntry, first_line
from opsboard.deploy.metrics import DeployMetrics, DeployStep, StepStatus


class CatalogError(Exception):
    """Raised when a pattern catalog override file is invalid."""
    pass


# Printed by the compose updater script; its output dumps the whole
# compose file, healthcheck timeouts included.
COMPOSE_UPDATED_BANNER = "Docker Compose file updated successfully"

DEFAULT_LABELS: dict[str, str] = {
    "tool_check": "Check {tool}",
    "source_checkout": "Download deployment config",
    "registry_login": "Registry login",
    "compose_update": "Update deployment config",
    "image_pull": "Pull container images",
    "container_restart": "Redeploy containers",
    "status_check": "Check deployment status",
    "namespace": "Configure namespace",
    "registry_secret": "Configure registry credentials",
    "manifest_apply": "Deploy Kubernetes resources",
    "pod_describe": "Inspect deployed pods",
    "rollout_restart": "Restart application",
    "cleanup": "Clean up deployment",
    "execution": "Run deployment",
}

DEFAULT_TIMEOUT_MARKERS: tuple[str, ...] = ("timeout", "timed out")
DEFAULT_INERT_COMMANDS: tuple[str, ...] = ("cat docker-compose",)
DEFAULT_INERT_OUTPUTS: tuple[str, ...] = (COMPOSE_UPDATED_BANNER,)


@dataclass
class MatchContext:
    """What a rule handler sees: the entry and the metrics being built."""

    entry: LogEntry
    metrics: DeployMetrics
    catalog: "PatternCatalog"
    timestamp: Optional[str] = None

    def add_step(
        self,
        label_key: str,
        status: StepStatus,
        message: Optional[str] = None,
        tool: str = "",
    ) -> DeployStep:
        step = DeployStep(
            name=self.catalog.label(label_key, tool=tool),
            status=status,
            message=message,
            timestamp=self.timestamp,
        )
        self.metrics.steps.append(step)
        return step

    def exit_status(self) -> StepStatus:
        return "failed" if self.entry.failed else "success"


Predicate = Callable[[LogEntry], bool]
Handler = Callable[[MatchContext], None]


@dataclass(frozen=True)
class PatternRule:
    """A (predicate, handler) pair in the recognition table."""

    key: str
    predicate: Predicate
    handler: Handler
    description: str = ""

    def matches(self, entry: LogEntry) -> bool:
        return self.predicate(entry)


# =============================================================================
# Image references
# =============================================================================

_COMPOSE_IMAGE_LINE = re.compile(r"^\s*image:\s*(\S+)", re.MULTILINE)
_DESCRIBE_IMAGE_LINE = re.compile(r"^\s*Image:\s*(\S+)\s*$", re.MULTILINE)
_SED_IMAGE_REPLACEMENT = re.compile(r"s\|[^|]*\|\s*image:\s*([^|'\"\s]+)")
_PATTERN_CHARS = ("\\", "[", "(", "*", "$", "&")


def _looks_like_pattern(reference: str) -> bool:
    """True for regex fragments and backreferences rather than real images."""
    return any(char in reference for char in _PATTERN_CHARS)


def collect_images(metrics: DeployMetrics, text: str, line_pattern: re.Pattern) -> int:
    """Add every image reference matched by ``line_pattern``; returns how many were usable."""
    added = 0
    for match in line_pattern.finditer(text):
        reference = match.group(1)
        if _looks_like_pattern(reference):
            continue
        if metrics.add_image(reference):
            added += 1
    return added


# =============================================================================
# Rule predicates and handlers
# =============================================================================

_WHICH_TOOL = re.compile(r"\bwhich\s+(docker-compose|kubectl|docker|helm|git)\b")
_GIT_CLONE_URL = re.compile(r"git clone (https?://\S+)")
_COMPOSE_PULL = re.compile(r"docker[\s-]+compose\b.*\bpull\b")
_COMPOSE_UP_DOWN = re.compile(r"docker[\s-]+compose\b.*\b(?:up|down)\b")
_COMPOSE_PS = re.compile(r"docker[\s-]+compose\b.*\bps\b")
_PS_WORD = re.compile(r"\bps\b")
_UP_WORD = re.compile(r"\bup\b")
_DOWN_WORD = re.compile(r"\bdown\b")
_RUNNING_CONTAINER = re.compile(r"Up\s+")
_NAMESPACE_ARG = re.compile(r"namespace\s+([^\s|;&]+)")
_DOCKER_SERVER = re.compile(r"--docker-server[=\s]([^\s]+)")
_APPLIED_RESOURCE = re.compile(r"(\w+)/([^\s]+)\s+(configured|created|unchanged)")
_YAML_FILE = re.compile(r"(\w+)\.yaml")
_LOGIN_VALUE_FLAGS = {"-u", "--username", "-p", "--password"}


def _tool_check(ctx: MatchContext) -> None:
    match = _WHICH_TOOL.search(ctx.entry.command)
    tool = match.group(1) if match else "tool"
    message = f"{tool} not found" if ctx.entry.failed else f"{tool} available"
    ctx.add_step("tool_check", ctx.exit_status(), message, tool=tool)


def _source_checkout(ctx: MatchContext) -> None:
    match = _GIT_CLONE_URL.search(ctx.entry.command)
    if ctx.entry.failed:
        message = "Source download failed"
    elif match:
        repository = match.group(1).rstrip("/").rsplit("/", 1)[-1].replace(".git", "")
        message = f"Git: {repository}"
    else:
        message = "Source downloaded"
    ctx.add_step("source_checkout", ctx.exit_status(), message)


def login_registry(command: str) -> Optional[str]:
    """
    Return the registry host from a ``docker login`` command line.

    Examples:
        >>> login_registry("docker login -u ci --password-stdin harbor.example.com")
        'harbor.example.com'
        >>> login_registry("docker login") is None
        True
    """
    tokens = command.split()
    try:
        start = tokens.index("login") + 1
    except ValueError:
        return None
    skip_next = False
    for token in tokens[start:]:
        if skip_next:
            skip_next = False
            continue
        if token in _LOGIN_VALUE_FLAGS:
            skip_next = True
            continue
        if token.startswith("-"):
            continue
        if token in ("&&", "||", "|", ";"):
            return None
        return token
    return None


def _registry_login(ctx: MatchContext) -> None:
    registry = login_registry(ctx.entry.command)
    if registry and ctx.metrics.registry is None:
        ctx.metrics.registry = registry
    if ctx.entry.failed:
        message = "Registry authentication failed"
    else:
        message = f"{registry or 'Registry'} authenticated"
    ctx.add_step("registry_login", ctx.exit_status(), message)


def _is_compose_update(entry: LogEntry) -> bool:
    command = entry.command
    return (
        ("sed -i" in command and "docker-compose.yml" in command)
        or "update_compose.py" in command
        or COMPOSE_UPDATED_BANNER in entry.output
    )


def _compose_update(ctx: MatchContext) -> None:
    entry, metrics = ctx.entry, ctx.metrics

    # A sed rewrite names the new tag before any image line has been seen
    sed_match = _SED_IMAGE_REPLACEMENT.search(entry.command)
    if sed_match and not _looks_like_pattern(sed_match.group(1)) and metrics.image_name is None:
        reference = sed_match.group(1)
        colon = reference.rfind(":")
        if colon > 0:
            metrics.image_tag = reference[colon + 1:]

    if not entry.failed and entry.output:
        collect_images(metrics, entry.output, _COMPOSE_IMAGE_LINE)

    message = "docker-compose.yml update failed" if entry.failed else "docker-compose.yml updated"
    ctx.add_step("compose_update", ctx.exit_status(), message)


def _image_pull(ctx: MatchContext) -> None:
    message = "Image pull failed" if ctx.entry.failed else "Images downloaded"
    ctx.add_step("image_pull", ctx.exit_status(), message)


def _is_container_restart(entry: LogEntry) -> bool:
    command = entry.command
    return bool(_COMPOSE_UP_DOWN.search(command)) and not _PS_WORD.search(command)


def _container_restart(ctx: MatchContext) -> None:
    command = ctx.entry.command
    has_down = bool(_DOWN_WORD.search(command))
    has_up = bool(_UP_WORD.search(command))
    if ctx.entry.failed:
        message = "Container redeploy failed"
    elif has_down and has_up:
        message = "Containers stopped and restarted"
    elif has_up:
        message = "Containers started"
    else:
        message = "Containers stopped"
    ctx.add_step("container_restart", ctx.exit_status(), message)


def _status_check(ctx: MatchContext) -> None:
    running = len(_RUNNING_CONTAINER.findall(ctx.entry.output))
    if running > 0:
        message = f"{running} container(s) running"
    else:
        message = "Deployment status checked"
    ctx.add_step("status_check", ctx.exit_status(), message)


def _namespace(ctx: MatchContext) -> None:
    match = _NAMESPACE_ARG.search(ctx.entry.command)
    if match:
        ctx.metrics.namespace = match.group(1)
    namespace = ctx.metrics.namespace or ""

    # Re-running against an existing namespace is not a failure
    already_exists = "AlreadyExists" in ctx.entry.error
    if already_exists:
        ctx.add_step("namespace", "success", f"Namespace '{namespace}' verified")
    elif ctx.entry.failed:
        ctx.add_step("namespace", "failed", f"Namespace '{namespace}' creation failed")
    else:
        ctx.add_step("namespace", "success", f"Namespace '{namespace}' created")


def _registry_secret(ctx: MatchContext) -> None:
    output = ctx.entry.full_output
    created = "created" in output or "deleted" in output
    status: StepStatus = "success" if created and not ctx.entry.failed else "failed"
    message = "Image pull credentials configured" if created else "Pull secret not created"
    ctx.add_step("registry_secret", status, message)

    server = _DOCKER_SERVER.search(ctx.entry.command)
    if server and ctx.metrics.registry is None:
        ctx.metrics.registry = server.group(1)


def _is_manifest_apply(entry: LogEntry) -> bool:
    return "find /tmp/" in entry.command and "*.yaml" in entry.command


def _manifest_apply(ctx: MatchContext) -> None:
    entry = ctx.entry
    if entry.failed:
        error_message = entry.message or "Unknown error"
        ctx.add_step("manifest_apply", "failed", f"Deployment failed: {first_line(error_message)}")
        ctx.metrics.errors.append(error_message)
        ctx.metrics.status = "failed"
        return

    output = entry.full_output
    applied = [
        f"{match.group(1)}: {match.group(2)}"
        for match in _APPLIED_RESOURCE.finditer(output)
    ]
    if applied:
        message = ", ".join(applied)
    else:
        message = f"{len(_YAML_FILE.findall(output))} resource(s) applied"
    ctx.add_step("manifest_apply", "success", message)


def _pod_describe(ctx: MatchContext) -> None:
    if ctx.entry.failed:
        ctx.add_step("pod_describe", "failed", "Pod inspection failed")
        return
    found = collect_images(ctx.metrics, ctx.entry.output, _DESCRIBE_IMAGE_LINE)
    ctx.add_step("pod_describe", "success", f"{found} running image(s) found")


def _rollout_restart(ctx: MatchContext) -> None:
    if ctx.entry.failed:
        ctx.add_step("rollout_restart", "failed", "Restart failed")
    elif "restarted" in ctx.entry.full_output:
        ctx.add_step("rollout_restart", "success", "Restart complete")
    else:
        ctx.add_step("rollout_restart", "in_progress", "Restart in progress")


def _is_cleanup(entry: LogEntry) -> bool:
    command = entry.command.lstrip()
    return command.startswith("rm -rf") and "_apply" in command


def _cleanup(ctx: MatchContext) -> None:
    message = "Temporary file cleanup failed" if ctx.entry.failed else "Temporary files removed"
    ctx.add_step("cleanup", ctx.exit_status(), message)


DEFAULT_RULES: tuple[PatternRule, ...] = (
    PatternRule("tool_check", lambda e: bool(_WHICH_TOOL.search(e.command)), _tool_check,
                "CLI tool availability check"),
    PatternRule("source_checkout", lambda e: "git clone" in e.command, _source_checkout,
                "Deployment source checkout"),
    PatternRule("registry_login", lambda e: "docker login" in e.command, _registry_login,
                "Container registry login"),
    PatternRule("compose_update", _is_compose_update, _compose_update,
                "Compose file image rewrite"),
    PatternRule("image_pull",
                lambda e: "docker-compose pull" in e.command or bool(_COMPOSE_PULL.search(e.command)),
                _image_pull, "Compose image pull"),
    PatternRule("container_restart", _is_container_restart, _container_restart,
                "Compose down / up"),
    PatternRule("status_check", lambda e: bool(_COMPOSE_PS.search(e.command)), _status_check,
                "Compose status poll"),
    PatternRule("namespace", lambda e: "kubectl create namespace" in e.command, _namespace,
                "Namespace creation"),
    PatternRule("registry_secret", lambda e: "kubectl create secret" in e.command, _registry_secret,
                "Registry pull secret creation"),
    PatternRule("manifest_apply", _is_manifest_apply, _manifest_apply,
                "Manifest apply from a temp directory"),
    PatternRule("pod_describe", lambda e: "kubectl describe" in e.command, _pod_describe,
                "Pod description and image extraction"),
    PatternRule("rollout_restart", lambda e: "kubectl rollout restart" in e.command,
                _rollout_restart, "Rollout restart"),
    PatternRule("cleanup", _is_cleanup, _cleanup, "Temp directory cleanup"),
)


# =============================================================================
# Catalog
# =============================================================================


@dataclass(frozen=True)
class PatternCatalog:
    """
    Recognition rules plus their configurable, user-facing data.

    Attributes:
        rules: Ordered rule table
        labels: Label key -> step name shown to users
        timeout_markers: Lower-case substrings that mark a timeout
        inert_commands: Command substrings for reads whose content is not evidence
        inert_outputs: Output substrings with the same meaning
        disabled_rules: Rule keys to skip
    """
    rules: tuple[PatternRule, ...] = DEFAULT_RULES
    labels: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_LABELS))
    timeout_markers: tuple[str, ...] = DEFAULT_TIMEOUT_MARKERS
    inert_commands: tuple[str, ...] = DEFAULT_INERT_COMMANDS
    inert_outputs: tuple[str, ...] = DEFAULT_INERT_OUTPUTS
    disabled_rules: frozenset[str] = frozenset()

    def label(self, key: str, tool: str = "") -> str:
        label = self.labels.get(key, key)
        return label.replace("{tool}", tool) if tool else label

    def active_rules(self) -> list[PatternRule]:
        return [rule for rule in self.rules if rule.key not in self.disabled_rules]

    def matching_rules(self, entry: LogEntry) -> list[PatternRule]:
        return [rule for rule in self.active_rules() if rule.matches(entry)]

    def with_rules(self, extra: Iterable[PatternRule]) -> "PatternCatalog":
        """Return a catalog with ``extra`` rules appended after the built-in ones."""
        return replace(self, rules=self.rules + tuple(extra))

    def with_overrides(self, overrides: Mapping[str, Any]) -> "PatternCatalog":
        """Return a catalog with label / marker overrides applied (see module docstring)."""
        unknown = set(overrides) - _OVERRIDE_KEYS
        if unknown:
            raise CatalogError(f"Unknown catalog keys: {sorted(unknown)}")

        changes: dict[str, Any] = {}
        if "labels" in overrides:
            labels = overrides["labels"]
            if not isinstance(labels, Mapping) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in labels.items()
            ):
                raise CatalogError("'labels' must map strings to strings")
            changes["labels"] = {**self.labels, **labels}
        for key in ("timeout_markers", "inert_commands", "inert_outputs"):
            if key in overrides:
                values = _string_list(overrides[key], key)
                if key == "timeout_markers":
                    values = [value.lower() for value in values]
                changes[key] = tuple(values)
        if "disabled_rules" in overrides:
            changes["disabled_rules"] = frozenset(
                _string_list(overrides["disabled_rules"], "disabled_rules")
            )
        return replace(self, **changes)


_OVERRIDE_KEYS = {"labels", "timeout_markers", "inert_commands", "inert_outputs", "disabled_rules"}


def _string_list(value: Any, key: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise CatalogError(f"'{key}' must be a list of strings")
    return value


DEFAULT_CATALOG = PatternCatalog()


def load_catalog(path: Union[str, Path], base: PatternCatalog = DEFAULT_CATALOG) -> PatternCatalog:
    """
    Load label / marker overrides from a JSON file on top of ``base``.

    Raises:
        CatalogError: If the file cannot be read or has an invalid shape
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CatalogError(f"Cannot read pattern catalog {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Invalid JSON in pattern catalog {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise CatalogError(f"Pattern catalog {path} must contain a JSON object")
    return base.with_overrides(data)


# =============================================================================
# Evidence predicates
# =============================================================================


def is_inert_read(entry: LogEntry, catalog: PatternCatalog = DEFAULT_CATALOG) -> bool:
    """
    True for reads whose *content* is not evidence about the run.

    Dumping a compose file prints settings such as ``healthcheck.timeout``;
    those words say nothing about whether the deployment timed out.
    """
    return (
        any(marker in entry.command for marker in catalog.inert_commands)
        or any(marker in entry.output for marker in catalog.inert_outputs)
    )


def is_timeout_evidence(entry: LogEntry, catalog: PatternCatalog = DEFAULT_CATALOG) -> bool:
    """True when a failed, non-inert entry reports a timeout in stderr or stdout."""
    if not entry.failed or is_inert_read(entry, catalog):
        return False
    error = entry.error.lower()
    output = entry.output.lower()
    return any(marker in error or marker in output for marker in catalog.timeout_markers)
