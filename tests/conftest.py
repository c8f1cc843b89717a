"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests: deterministic settings and realistic
deployment transcripts / stage-record histories.
"""

import pytest

from opsboard.config import Settings


def make_log(command, *, timestamp="2025-03-01T10:00:00Z", output="", error="", exit_code=0):
    """Build a raw log-entry dict the way the log collector sends it."""
    return {
        "timestamp": timestamp,
        "command": command,
        "output": output,
        "error": error,
        "exit_code": exit_code,
    }


def make_record(record_id, step_name, status, **extra):
    """Build a raw stage-record dict the way the status poller sends it."""
    record = {"id": record_id, "step_name": step_name, "status": status}
    record.update(extra)
    return record


@pytest.fixture
def test_settings():
    """
    Settings with the built-in defaults.

    Ignores any .env file so tests don't depend on the developer's machine.
    """
    return Settings(_env_file=None)


@pytest.fixture
def kubectl_logs():
    """A complete, successful kubectl deployment transcript."""
    return [
        make_log("which kubectl", timestamp="2025-03-01T10:00:00Z",
                 output="/usr/local/bin/kubectl"),
        make_log("git clone https://git.example.com/team/shop-api.git /tmp/shop-api",
                 timestamp="2025-03-01T10:00:05Z",
                 output="Cloning into '/tmp/shop-api'..."),
        make_log("kubectl create namespace shop", timestamp="2025-03-01T10:00:10Z",
                 error='Error from server (AlreadyExists): namespaces "shop" already exists',
                 exit_code=1),
        make_log("kubectl create secret docker-registry harbor-cred "
                 "--docker-server=harbor.example.com --docker-username=ci -n shop",
                 timestamp="2025-03-01T10:00:12Z",
                 output="secret/harbor-cred created"),
        make_log("find /tmp/shop-api_apply -name '*.yaml' | xargs -n1 kubectl apply -f",
                 timestamp="2025-03-01T10:00:20Z",
                 output="deployment.apps/shop-api configured\nservice/shop-api unchanged\n"),
        make_log("kubectl describe pod -n shop -l app=shop-api",
                 timestamp="2025-03-01T10:00:25Z",
                 output=(
                     "Name:         shop-api-7d9f\n"
                     "Containers:\n"
                     "  api:\n"
                     "    Image:          harbor.example.com/shop/shop-api:1.4.2\n"
                     "    Image ID:       harbor.example.com/shop/shop-api@sha256:abc\n"
                 )),
        make_log("kubectl rollout restart deployment/shop-api -n shop",
                 timestamp="2025-03-01T10:00:30Z",
                 output="deployment.apps/shop-api restarted"),
        make_log("rm -rf /tmp/shop-api_apply", timestamp="2025-03-01T10:01:05Z"),
    ]


@pytest.fixture
def compose_logs():
    """A complete, successful docker-compose deployment transcript."""
    compose_file = (
        "services:\n"
        "  web:\n"
        "    image: harbor.example.com/shop/web:2.0.1\n"
        "    healthcheck:\n"
        "      timeout: 10s\n"
        "  worker:\n"
        "    image: harbor.example.com/shop/worker:2.0.1\n"
    )
    return [
        make_log("docker login -u ci --password-stdin harbor.example.com",
                 timestamp="2025-03-01T09:00:00Z", output="Login Succeeded"),
        make_log("cd /opt/shop && sed -i "
                 "'s|image: harbor.example.com/shop/web:.*|image: harbor.example.com/shop/web:2.0.1|' "
                 "docker-compose.yml && cat docker-compose.yml",
                 timestamp="2025-03-01T09:00:03Z", output=compose_file),
        make_log("cd /opt/shop && docker-compose pull",
                 timestamp="2025-03-01T09:00:30Z", output="Pulling web ... done"),
        make_log("cd /opt/shop && docker-compose down && docker-compose up -d",
                 timestamp="2025-03-01T09:01:00Z", output="Creating shop_web_1 ... done"),
        make_log("cd /opt/shop && docker-compose ps",
                 timestamp="2025-03-01T09:01:10Z",
                 output=(
                     "shop_web_1      /entrypoint.sh   Up 5 seconds\n"
                     "shop_worker_1   /worker.sh       Up 5 seconds\n"
                 )),
    ]


@pytest.fixture
def stage_history():
    """Stage records from three pipeline runs of one service."""
    return [
        make_record(1, "build", "success",
                    started_at="2025-03-01T08:00:00Z", completed_at="2025-03-01T08:05:00Z"),
        make_record(2, "deploy", "failed",
                    started_at="2025-03-01T08:06:00Z", completed_at="2025-03-01T08:07:00Z",
                    error_message="rollout timed out"),
        make_record(3, "Docker_Build", "success",
                    started_at="2025-03-01T09:00:00Z", completed_at="2025-03-01T09:04:00Z"),
        make_record(4, "k8s-deploy", "completed",
                    started_at="2025-03-01T09:05:00Z", completed_at="2025-03-01T09:06:00Z"),
    ]
