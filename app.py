#!/usr/bin/env python3
import os
import aws_cdk as cdk
from infrastructure.lib.fargate_pipeline_stack import FargatePipelineStack

app = cdk.App()

# Explicit deploy targets take precedence over the CLI profile defaults
env = cdk.Environment(
    account=os.getenv("CDK_DEPLOY_ACCOUNT") or os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEPLOY_REGION") or os.getenv("CDK_DEFAULT_REGION"),
)

stack = FargatePipelineStack(
    app,
    "CdkFargateTestStack",
    env=env,
    description="Build and deploy pipeline for a load-balanced Fargate service",
)

cdk.Tags.of(stack).add("Project", "FargatePipeline")
cdk.Tags.of(stack).add("Environment", "Production")

app.synth()
