"""
Contract tests for the container build recipe and the CI pipeline.

Tests verify:
- The pipeline only runs on tags and publishes latest + the tag
- Exactly one notification step, gated on failure
- The runtime image exposes 8080 and reads configuration from the environment
"""

from pathlib import Path
from typing import List

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[2]
REGISTRY = "docker-registry.k8s.array21.dev"


@pytest.fixture(scope="module")
def pipeline() -> dict:
    return yaml.safe_load((ROOT / ".drone.yml").read_text())


@pytest.fixture(scope="module")
def final_stage() -> List[str]:
    lines = (ROOT / "Dockerfile").read_text().splitlines()
    stages = [i for i, line in enumerate(lines) if line.upper().startswith("FROM ")]
    assert len(stages) >= 2, "expected a multi-stage build"
    return [line.strip() for line in lines[stages[-1]:]]


class TestPipeline:
    """Tests for .drone.yml."""

    def test_metadata(self, pipeline):
        assert pipeline["kind"] == "pipeline"
        assert pipeline["type"] == "kubernetes"
        assert pipeline["name"] == "twinsight-login-server"

    def test_triggered_by_tags_only(self, pipeline):
        assert pipeline["trigger"] == {"event": ["tag"]}

    def test_image_published_with_latest_and_tag(self, pipeline):
        build = pipeline["steps"][0]

        assert build["image"] == "plugins/docker"
        assert build["settings"]["registry"] == REGISTRY
        assert build["settings"]["repo"] == f"{REGISTRY}/twinsight-login-server"
        assert build["settings"]["tags"] == ["latest", "${DRONE_TAG}"]

    def test_single_failure_notification(self, pipeline):
        notifications = [s for s in pipeline["steps"] if s["image"] == "plugins/slack"]

        assert len(notifications) == 1
        step = notifications[0]
        assert step["when"] == {"status": ["failure"]}
        assert step["settings"]["webhook"] == {"from_secret": "discord_webhook"}
        assert step["settings"]["username"] == "Drone CI/CD - twinsight-login-server"


class TestDockerfile:
    """Tests for the runtime stage of the Dockerfile."""

    def test_exposes_8080(self, final_stage):
        assert "EXPOSE 8080" in final_stage

    def test_reads_configuration_from_environment(self, final_stage):
        assert "ENV USE_ENVIRONMENTAL_VARIABLES=TRUE" in final_stage

    def test_installs_certificates_and_tls(self, final_stage):
        text = "\n".join(final_stage)
        assert "ca-certificates" in text
        assert "libssl" in text

    def test_copies_build_artifact(self, final_stage):
        assert any(line.startswith("COPY --from=builder") for line in final_stage)

    def test_runs_login_server(self, final_stage):
        assert final_stage[-1].startswith("CMD")
        assert "twinsight-login-server" in final_stage[-1]
