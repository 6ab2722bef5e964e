import runpy
from pathlib import Path

import pytest

APP_PATH = str(Path(__file__).parent.parent / "app.py")


@pytest.fixture
def app_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("CDK_OUTDIR", str(tmp_path))
    monkeypatch.setenv("CDK_DEFAULT_ACCOUNT", "111111111111")
    monkeypatch.setenv("CDK_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("CDK_DEPLOY_ACCOUNT", "222222222222")
    monkeypatch.setenv("CDK_DEPLOY_REGION", "eu-west-1")
    return monkeypatch


class TestApp:
    """Test suite for the CDK app entry point."""

    def test_deploy_environment_takes_precedence(self, app_environment):
        """Test that CDK_DEPLOY_* wins over CDK_DEFAULT_*."""
        # When
        stack = runpy.run_path(APP_PATH)["stack"]

        # Then
        assert stack.account == "222222222222"
        assert stack.region == "eu-west-1"

    def test_falls_back_to_default_environment(self, app_environment):
        """Test that CDK_DEFAULT_* is used when no deploy target is set."""
        # Given
        app_environment.delenv("CDK_DEPLOY_ACCOUNT")
        app_environment.delenv("CDK_DEPLOY_REGION")

        # When
        stack = runpy.run_path(APP_PATH)["stack"]

        # Then
        assert stack.account == "111111111111"
        assert stack.region == "us-east-1"

    def test_stack_synthesized(self, app_environment, tmp_path):
        """Test that running the app writes the stack template."""
        # When
        runpy.run_path(APP_PATH)

        # Then
        assert (tmp_path / "CdkFargateTestStack.template.json").exists()
