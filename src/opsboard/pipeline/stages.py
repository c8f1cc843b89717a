"""
Canonical pipeline stages and step-name normalization.

Backends name their stages inconsistently: "Build", "docker_build",
"k8s-deploy", "Kubernetes", "monitoring", "DAST-ops" ... This module folds
all of them onto the four canonical stages shown on the dashboard.
"""

import re
from typing import Any

SOURCE = "source"
BUILD = "build"
DEPLOY = "deploy"
OPERATE = "operate"

# Display order, left to right.
CANONICAL_STAGES: tuple[str, ...] = (SOURCE, BUILD, DEPLOY, OPERATE)

# Stages that are resolved from polled records (source is always synthesized).
RESOLVED_STAGES: tuple[str, ...] = (BUILD, DEPLOY, OPERATE)

BUILD_ALIASES = frozenset({"build", "image build", "docker-build", "docker_build"})
DEPLOY_ALIASES = frozenset({
    "deploy", "deployment", "k8s-deploy", "k8s_deploy", "k8sdeploy", "kubernetes",
})
OPERATE_ALIASES = frozenset({"operate", "operation", "monitor", "monitoring", "ops"})

_TOKEN_SPLIT = re.compile(r"[\s_\-./]+")


def normalize_step_name(name: Any) -> str:
    """
    Normalize a backend step name to a canonical stage.

    Rules are checked in order: build, deploy, operate. Names that match
    none of them are returned lower-cased and trimmed so that they still
    compare equal to themselves.

    Examples:
        >>> normalize_step_name("Docker_Build")
        'build'
        >>> normalize_step_name("rebuild-cache")
        'rebuild-cache'
        >>> normalize_step_name("K8s-Deploy")
        'deploy'
        >>> normalize_step_name("dast ops")
        'operate'
    """
    if not isinstance(name, str):
        return ""
    n = name.strip().lower()
    if not n:
        return ""

    if n in BUILD_ALIASES or ("build" in n and "rebuild" not in n):
        return BUILD

    if n in DEPLOY_ALIASES or "deploy" in n:
        return DEPLOY

    tokens = _TOKEN_SPLIT.split(n)
    if n in OPERATE_ALIASES or "monitor" in n or "operat" in n or "ops" in tokens:
        return OPERATE

    return n
