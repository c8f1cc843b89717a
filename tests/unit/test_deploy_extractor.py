"""
Unit tests for deploy metrics extraction.

Runs the extractor over realistic kubectl / docker-compose transcripts and
over the failure shapes seen in production: timeouts, manifest validation
errors, partial runs and broken timestamps.
"""

import pytest

from conftest import make_log
from opsboard.deploy import (
    DeployStep,
    LogEntry,
    extract_deploy_metrics,
    resolve_status,
)
from opsboard.deploy.patterns import DEFAULT_CATALOG


def step_names(metrics):
    return [step.name for step in metrics.steps]


class TestBasicScenarios:
    """Smallest transcripts and their derived status."""

    @pytest.mark.parametrize("logs", [None, []])
    def test_no_logs_is_pending(self, logs, test_settings):
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert metrics.status == "pending"
        assert metrics.steps == []
        assert metrics.errors == []
        assert metrics.duration is None
        assert metrics.deploy_time is None

    def test_single_git_clone(self, test_settings):
        metrics = extract_deploy_metrics(
            [make_log("git clone https://x/repo.git")], settings=test_settings,
        )
        assert len(metrics.steps) == 1
        assert metrics.steps[0].name == "Download deployment config"
        assert metrics.steps[0].status == "success"
        assert metrics.steps[0].message == "Git: repo"
        assert metrics.status == "success"
        assert metrics.duration == 0

    def test_container_restart_timeout(self, test_settings):
        logs = [make_log(
            "docker-compose down && docker-compose up -d",
            error="ERROR: for web  UnixHTTPConnectionPool: Read timed out. (read timeout=60)",
            exit_code=1,
        )]
        metrics = extract_deploy_metrics(logs, settings=test_settings)

        assert metrics.status == "failed"
        assert len(metrics.errors) >= 1
        assert metrics.errors[0].startswith("Timeout error: ")
        assert metrics.has_failed_step
        # The restart step already carries the failure, no synthetic step needed
        assert step_names(metrics) == ["Redeploy containers"]

    def test_unrecognized_commands_stay_pending(self, test_settings):
        logs = [make_log("echo start"), make_log("ls -la")]
        assert extract_deploy_metrics(logs, settings=test_settings).status == "pending"

    def test_raw_dicts_and_entries_are_equivalent(self, compose_logs, test_settings):
        entries = [LogEntry.from_dict(log) for log in compose_logs]
        assert extract_deploy_metrics(entries, settings=test_settings) == \
            extract_deploy_metrics(compose_logs, settings=test_settings)


class TestKubectlTranscript:
    """A complete kubectl deployment."""

    def test_steps(self, kubectl_logs, test_settings):
        metrics = extract_deploy_metrics(kubectl_logs, settings=test_settings)

        assert step_names(metrics) == [
            "Check kubectl",
            "Download deployment config",
            "Configure namespace",
            "Configure registry credentials",
            "Deploy Kubernetes resources",
            "Inspect deployed pods",
            "Restart application",
            "Clean up deployment",
        ]
        assert all(step.status == "success" for step in metrics.steps)
        assert metrics.steps[1].message == "Git: shop-api"
        assert metrics.steps[2].message == "Namespace 'shop' verified"
        assert metrics.steps[4].message == "apps: shop-api, service: shop-api"

    def test_overall_fields(self, kubectl_logs, test_settings):
        metrics = extract_deploy_metrics(kubectl_logs, settings=test_settings)

        assert metrics.status == "success"
        assert metrics.duration == 65
        assert metrics.deploy_time == "2025-03-01 10:01:05"
        assert metrics.namespace == "shop"
        assert metrics.registry == "harbor.example.com"
        assert metrics.image_name == "harbor.example.com/shop/shop-api"
        assert metrics.image_tag == "1.4.2"
        assert [image.full_path for image in metrics.images] == [
            "harbor.example.com/shop/shop-api:1.4.2",
        ]
        assert metrics.errors == []
        assert metrics.warnings == []

    def test_step_timestamps_use_stage_format(self, kubectl_logs, test_settings):
        metrics = extract_deploy_metrics(kubectl_logs, settings=test_settings)
        assert metrics.steps[0].timestamp == "10:00:00"
        assert metrics.steps[-1].timestamp == "10:01:05"

    def test_display_timezone(self, kubectl_logs, test_settings):
        settings = test_settings.model_copy(update={"display_timezone": "Asia/Seoul"})
        metrics = extract_deploy_metrics(kubectl_logs, settings=settings)
        assert metrics.deploy_time == "2025-03-01 19:01:05"

    def test_manifest_failure(self, kubectl_logs, test_settings):
        error = 'error: unable to recognize "deploy.yaml": no matches for kind "Deploymnt"'
        kubectl_logs[4] = make_log(
            "find /tmp/shop-api_apply -name '*.yaml' | xargs -n1 kubectl apply -f",
            timestamp="2025-03-01T10:00:20Z", error=error, exit_code=1,
        )
        metrics = extract_deploy_metrics(kubectl_logs, settings=test_settings)

        assert metrics.status == "failed"
        assert metrics.errors == [error]
        failed = [step for step in metrics.steps if step.status == "failed"]
        assert len(failed) == 1
        assert failed[0].name == "Deploy Kubernetes resources"
        assert failed[0].message == f"Deployment failed: {error}"


class TestComposeTranscript:
    """A complete docker-compose deployment."""

    def test_steps(self, compose_logs, test_settings):
        metrics = extract_deploy_metrics(compose_logs, settings=test_settings)

        assert step_names(metrics) == [
            "Registry login",
            "Update deployment config",
            "Pull container images",
            "Redeploy containers",
            "Check deployment status",
        ]
        assert metrics.steps[0].message == "harbor.example.com authenticated"
        assert metrics.steps[3].message == "Containers stopped and restarted"
        assert metrics.steps[4].message == "2 container(s) running"

    def test_overall_fields(self, compose_logs, test_settings):
        metrics = extract_deploy_metrics(compose_logs, settings=test_settings)

        assert metrics.status == "success"
        assert metrics.duration == 70
        assert metrics.registry == "harbor.example.com"
        assert [image.full_path for image in metrics.images] == [
            "harbor.example.com/shop/web:2.0.1",
            "harbor.example.com/shop/worker:2.0.1",
        ]
        assert metrics.image_name == "harbor.example.com/shop/web"
        assert metrics.image_tag == "2.0.1"

    def test_compose_dump_timeout_setting_is_not_a_failure(self, compose_logs, test_settings):
        """The dumped compose file mentions a healthcheck timeout."""
        compose_logs[1]["exit_code"] = 1
        metrics = extract_deploy_metrics(compose_logs, settings=test_settings)

        assert not any(error.startswith("Timeout error") for error in metrics.errors)
        assert "Run deployment" not in step_names(metrics)

    def test_partial_run_is_running(self, compose_logs, test_settings):
        logs = compose_logs[:3] + [make_log("kubectl rollout restart deployment/web",
                                            timestamp="2025-03-01T09:00:40Z")]
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert metrics.steps[-1].status == "in_progress"
        assert metrics.status == "running"


class TestTimeouts:
    """Timeout evidence without a matching rule."""

    def test_synthetic_execution_step(self, kubectl_logs, test_settings):
        kubectl_logs.insert(7, make_log(
            "kubectl rollout status deployment/shop-api -n shop --timeout=120s",
            timestamp="2025-03-01T10:00:50Z",
            error="error: timed out waiting for the condition\n",
            exit_code=1,
        ))
        metrics = extract_deploy_metrics(kubectl_logs, settings=test_settings)

        assert metrics.status == "failed"
        assert metrics.errors == ["Timeout error: error: timed out waiting for the condition\n"]
        last = metrics.steps[-1]
        assert last.name == "Run deployment"
        assert last.status == "failed"
        assert last.message == "Timeout: error: timed out waiting for the condition"
        assert last.timestamp == "10:00:50"

    def test_no_synthetic_step_when_a_step_already_failed(self, test_settings):
        logs = [
            make_log("which kubectl", exit_code=1),
            make_log("kubectl rollout status deploy/web", error="timed out", exit_code=1),
        ]
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert step_names(metrics) == ["Check kubectl"]
        assert metrics.status == "failed"

    def test_timeout_in_stdout(self, test_settings):
        logs = [make_log("./healthcheck.sh", output="healthcheck TIMEOUT after 30s", exit_code=124)]
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert metrics.status == "failed"
        assert step_names(metrics) == ["Run deployment"]

    def test_successful_command_mentioning_timeout(self, test_settings):
        logs = [make_log("git clone https://x/repo.git", output="connect timeout=30 (retry ok)")]
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert metrics.status == "success"
        assert metrics.errors == []


class TestWarningsAndDedup:

    def test_warnings_only_from_successful_entries(self, test_settings):
        logs = [
            make_log("git clone https://x/repo.git", output="warning: redirecting to https://y/repo.git"),
            make_log("docker-compose pull", error="WARNING: some images failed", exit_code=1),
        ]
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert metrics.warnings == ["warning: redirecting to https://y/repo.git"]

    def test_repeated_status_polls_collapse(self, test_settings):
        logs = [
            make_log("docker compose ps", timestamp="2025-03-01T10:00:00Z"),
            make_log("docker compose ps", timestamp="2025-03-01T10:00:05Z", output="web Up 1 second"),
            make_log("docker compose ps", timestamp="2025-03-01T10:00:10Z", output="web Up 6 seconds"),
        ]
        metrics = extract_deploy_metrics(logs, settings=test_settings)

        assert len(metrics.steps) == 1
        assert metrics.steps[0].message == "Deployment status checked"
        assert metrics.steps[0].timestamp == "10:00:00"

    def test_no_duplicate_steps_or_issues(self, compose_logs, test_settings):
        metrics = extract_deploy_metrics(compose_logs * 3, settings=test_settings)

        keys = [step.key for step in metrics.steps]
        assert len(keys) == len(set(keys))
        assert len(metrics.errors) == len(set(metrics.errors))
        assert len(metrics.warnings) == len(set(metrics.warnings))

    def test_success_and_failure_of_same_step_are_both_kept(self, test_settings):
        logs = [
            make_log("docker-compose pull", exit_code=1, error="pull access denied"),
            make_log("docker-compose pull"),
        ]
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert [step.key for step in metrics.steps] == [
            ("Pull container images", "failed"),
            ("Pull container images", "success"),
        ]
        assert metrics.status == "failed"


class TestTiming:

    def test_malformed_timestamps_omit_timing(self, test_settings):
        logs = [
            make_log("git clone https://x/repo.git", timestamp="not-a-time"),
            make_log("docker-compose pull", timestamp="2025-03-01T10:00:00Z"),
        ]
        metrics = extract_deploy_metrics(logs, settings=test_settings)

        assert metrics.duration is None
        assert metrics.deploy_time is None
        assert metrics.steps[0].timestamp is None
        assert metrics.status == "success"

    def test_out_of_order_transcript_omits_duration(self, test_settings):
        logs = [
            make_log("git clone https://x/repo.git", timestamp="2025-03-01T10:05:00Z"),
            make_log("docker-compose pull", timestamp="2025-03-01T10:00:00Z"),
        ]
        metrics = extract_deploy_metrics(logs, settings=test_settings)
        assert metrics.duration is None

    def test_fractional_seconds_are_floored(self, test_settings):
        logs = [
            make_log("git clone https://x/repo.git", timestamp="2025-03-01T10:00:00.900Z"),
            make_log("docker-compose pull", timestamp="2025-03-01T10:00:42.100Z"),
        ]
        assert extract_deploy_metrics(logs, settings=test_settings).duration == 41


class TestDeterminism:

    def test_same_transcript_same_result(self, kubectl_logs, test_settings):
        first = extract_deploy_metrics(kubectl_logs, settings=test_settings)
        second = extract_deploy_metrics(kubectl_logs, settings=test_settings)
        assert first == second
        assert first is not second

    def test_explicit_catalog(self, kubectl_logs, test_settings):
        catalog = DEFAULT_CATALOG.with_overrides({"disabled_rules": ["cleanup", "tool_check"]})
        metrics = extract_deploy_metrics(kubectl_logs, catalog=catalog, settings=test_settings)
        assert "Clean up deployment" not in step_names(metrics)
        assert "Check kubectl" not in step_names(metrics)


class TestResolveStatus:

    def test_precedence(self):
        ok = DeployStep("Pull container images", "success")
        bad = DeployStep("Redeploy containers", "failed")
        wip = DeployStep("Restart application", "in_progress")

        assert resolve_status([], []) == "pending"
        assert resolve_status([ok], []) == "success"
        assert resolve_status([ok, wip], []) == "running"
        assert resolve_status([ok, bad], []) == "failed"
        assert resolve_status([ok], ["boom"]) == "failed"
        assert resolve_status([ok], [], has_timeout=True) == "failed"
        assert resolve_status([], ["boom"]) == "failed"


# One command per built-in rule, each run with a failing exit code
FAILING_COMMANDS = {
    "tool_check": "which kubectl",
    "source_checkout": "git clone https://git.example.com/team/shop-api.git",
    "registry_login": "docker login harbor.example.com",
    "compose_update": "python3 update_compose.py --tag 2.0.1",
    "image_pull": "docker-compose pull",
    "container_restart": "docker-compose up -d",
    "status_check": "docker compose ps",
    "namespace": "kubectl create namespace shop",
    "registry_secret": "kubectl create secret docker-registry cred --docker-server=reg.io",
    "manifest_apply": "find /tmp/shop_apply -name '*.yaml' | xargs -n1 kubectl apply -f",
    "pod_describe": "kubectl describe pod -n shop -l app=web",
    "rollout_restart": "kubectl rollout restart deployment/web",
    "cleanup": "rm -rf /tmp/shop_apply",
}


class TestFailureDominance:
    """A non-zero exit on any recognised command never yields success."""

    def test_every_rule_is_covered(self):
        assert set(FAILING_COMMANDS) == {rule.key for rule in DEFAULT_CATALOG.rules}

    @pytest.mark.parametrize("rule_key", [rule.key for rule in DEFAULT_CATALOG.rules])
    def test_failed_exit_fails_the_run(self, rule_key, test_settings):
        logs = [
            make_log("git clone https://x/repo.git", timestamp="2025-03-01T10:00:00Z"),
            make_log(FAILING_COMMANDS[rule_key], timestamp="2025-03-01T10:00:05Z",
                     output="secret/cred created\ndeployment.apps/web restarted\nweb Up 2 seconds",
                     error="permission denied", exit_code=1),
        ]
        metrics = extract_deploy_metrics(logs, settings=test_settings)

        assert metrics.status == "failed"
        assert metrics.has_failed_step

    def test_existing_namespace_is_the_exception(self, test_settings):
        logs = [make_log(
            "kubectl create namespace shop",
            error='Error from server (AlreadyExists): namespaces "shop" already exists',
            exit_code=1,
        )]
        metrics = extract_deploy_metrics(logs, settings=test_settings)

        assert metrics.status == "success"
        assert metrics.steps[0].status == "success"
