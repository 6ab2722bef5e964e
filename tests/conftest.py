import sys
from pathlib import Path

import pytest
from aws_cdk import App, Environment
from aws_cdk.assertions import Template

# Add project root to Python path
project_root = str(Path(__file__).parent.parent)
if project_root not in sys.path:
    sys.path.append(project_root)

from infrastructure.lib.config import FargatePipelineConfig  # noqa: E402
from infrastructure.lib.fargate_pipeline_stack import FargatePipelineStack  # noqa: E402

TEST_ENV = Environment(account="123456789012", region="us-east-1")


def _create_stack(config=None, context=None) -> FargatePipelineStack:
    app = App(context=context or {})
    return FargatePipelineStack(app, "test-fargate-pipeline", config=config, env=TEST_ENV)


@pytest.fixture
def stack_factory():
    """Builds a stack from an explicit config or from CDK context."""
    return _create_stack


@pytest.fixture(scope="session")
def default_stack() -> FargatePipelineStack:
    return _create_stack(FargatePipelineConfig())


@pytest.fixture(scope="session")
def template(default_stack) -> Template:
    return Template.from_stack(default_stack)
