from typing import Optional

from aws_cdk import (
    Stack,
    aws_codebuild as codebuild,
    aws_codepipeline as codepipeline,
    aws_codepipeline_actions as pipeline_actions,
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_ecs_patterns as ecs_patterns,
    aws_events as events,
    aws_events_targets as targets,
    aws_iam as iam,
    aws_logs as logs,
    aws_s3 as s3,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    Annotations,
    CfnOutput,
    Duration,
    RemovalPolicy,
    SecretValue,
)
from constructs import Construct

from infrastructure.lib.buildspec import create_build_spec
from infrastructure.lib.config import FargatePipelineConfig
from infrastructure.lib.monitoring import create_monitoring

XRAY_DAEMON_IMAGE = "public.ecr.aws/xray/aws-xray-daemon:latest"
XRAY_DAEMON_PORT = 2000

LOG_RETENTION = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    60: logs.RetentionDays.TWO_MONTHS,
    90: logs.RetentionDays.THREE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
}


class FargatePipelineStack(Stack):
    """
    Build and deploy pipeline for a containerized web application.

    GitHub source -> CodeBuild image build pushed to ECR -> ECS deploy onto a
    load-balanced Fargate service, with autoscaling, dashboards and alarms.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: Optional[FargatePipelineConfig] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        if config is None:
            config = FargatePipelineConfig.from_context(self.node)
        self.config = config.validate()

        self.vpc = self.create_vpc()
        self.repository = self.create_repository()
        self.pipeline_project = self.create_pipeline_project()
        self.fargate_service = self.create_load_balanced_fargate_service()
        self.configure_autoscaling()
        self.pipeline = self.create_pipeline()
        self.alarm_topic = self.create_alarm_topic()
        self.monitoring = create_monitoring(
            self,
            self.config,
            self.fargate_service,
            self.pipeline_project,
            self.alarm_topic,
        )

        # Outputs
        CfnOutput(
            self,
            "LoadBalancerDns",
            value=self.fargate_service.load_balancer.load_balancer_dns_name,
            description="Application Load Balancer DNS name",
            export_name=f"{self.stack_name}-LoadBalancerDns",
        )

        CfnOutput(
            self,
            "ServiceUrl",
            value=f"http://{self.fargate_service.load_balancer.load_balancer_dns_name}",
            description="Service URL",
        )

        CfnOutput(
            self,
            "RepositoryUri",
            value=self.repository.repository_uri,
            description="ECR repository URI",
            export_name=f"{self.stack_name}-RepositoryUri",
        )

        CfnOutput(
            self,
            "PipelineName",
            value=self.pipeline.pipeline_name,
            description="CodePipeline name",
            export_name=f"{self.stack_name}-PipelineName",
        )

        CfnOutput(
            self,
            "ArtifactBucketName",
            value=self.pipeline.artifact_bucket.bucket_name,
            description="Pipeline Artifact Bucket",
            export_name=f"{self.stack_name}-ArtifactBucket",
        )

        CfnOutput(
            self,
            "AlarmTopicArn",
            value=self.alarm_topic.topic_arn,
            description="SNS topic receiving alarm and pipeline failure notifications",
            export_name=f"{self.stack_name}-AlarmTopicArn",
        )

    def create_vpc(self) -> ec2.Vpc:
        return ec2.Vpc(
            self,
            "Vpc",
            ip_addresses=ec2.IpAddresses.cidr(self.config.vpc_cidr),
            max_azs=self.config.max_azs,
            nat_gateways=self.config.nat_gateways,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=24,
                ),
            ],
        )

    def create_repository(self) -> ecr.Repository:
        repository = ecr.Repository(
            self,
            "Repository",
            repository_name=self.config.repository_name,
            image_scan_on_push=True,
            removal_policy=RemovalPolicy.RETAIN,
        )
        repository.add_lifecycle_rule(
            description="Keep the 20 most recent images",
            max_image_count=20,
        )
        return repository

    def create_pipeline_project(self) -> codebuild.PipelineProject:
        """Image build project: Maven package, docker build, push to ECR."""
        project = codebuild.PipelineProject(
            self,
            "ImageBuild",
            project_name=self.config.project_name,
            environment=codebuild.BuildEnvironment(
                build_image=codebuild.LinuxBuildImage.STANDARD_7_0,
                privileged=True,
            ),
            environment_variables={
                "ECR_REPO": codebuild.BuildEnvironmentVariable(
                    value=self.repository.repository_uri
                ),
                "CONTAINER_NAME": codebuild.BuildEnvironmentVariable(
                    value=self.config.container_name
                ),
            },
            build_spec=codebuild.BuildSpec.from_object(create_build_spec()),
            cache=codebuild.Cache.local(
                codebuild.LocalCacheMode.DOCKER_LAYER,
                codebuild.LocalCacheMode.CUSTOM,
            ),
        )
        project.role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name(
                "AmazonEC2ContainerRegistryPowerUser"
            )
        )
        return project

    def create_load_balanced_fargate_service(
        self,
    ) -> ecs_patterns.ApplicationLoadBalancedFargateService:
        cluster = ecs.Cluster(
            self,
            "Cluster",
            vpc=self.vpc,
            container_insights_v2=ecs.ContainerInsights.ENABLED,
        )

        log_group = logs.LogGroup(
            self,
            "ServiceLogs",
            retention=LOG_RETENTION[self.config.log_retention_days],
            removal_policy=RemovalPolicy.DESTROY,
        )

        service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self,
            "Service",
            cluster=cluster,
            cpu=self.config.cpu,
            memory_limit_mib=self.config.memory_limit_mib,
            desired_count=self.config.desired_count,
            min_healthy_percent=100,
            max_healthy_percent=200,
            assign_public_ip=True,
            public_load_balancer=True,
            health_check_grace_period=Duration.seconds(
                self.config.health_check_grace_period_seconds
            ),
            circuit_breaker=ecs.DeploymentCircuitBreaker(rollback=True),
            task_image_options=ecs_patterns.ApplicationLoadBalancedTaskImageOptions(
                container_name=self.config.container_name,
                image=ecs.ContainerImage.from_registry(self.config.bootstrap_image),
                container_port=self.config.container_port,
                environment={"SERVER_PORT": str(self.config.container_port)},
                log_driver=ecs.LogDrivers.aws_logs(
                    stream_prefix=self.config.container_name,
                    log_group=log_group,
                ),
            ),
        )

        # Pipeline deployments replace the bootstrap image with one from ECR
        service.task_definition.obtain_execution_role().add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name(
                "AmazonEC2ContainerRegistryPowerUser"
            )
        )

        service.target_group.configure_health_check(
            path=self.config.health_check_path,
            healthy_http_codes=self.config.healthy_http_codes,
            interval=Duration.seconds(30),
            timeout=Duration.seconds(5),
            healthy_threshold_count=2,
            unhealthy_threshold_count=3,
        )

        if self.config.enable_xray:
            self._add_xray_daemon(service.task_definition, log_group)

        return service

    def _add_xray_daemon(
        self, task_definition: ecs.FargateTaskDefinition, log_group: logs.ILogGroup
    ) -> None:
        task_definition.add_container(
            "XRayDaemon",
            container_name="xray-daemon",
            image=ecs.ContainerImage.from_registry(XRAY_DAEMON_IMAGE),
            cpu=32,
            memory_reservation_mib=64,
            essential=False,
            port_mappings=[
                ecs.PortMapping(
                    container_port=XRAY_DAEMON_PORT,
                    protocol=ecs.Protocol.UDP,
                )
            ],
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix="xray-daemon",
                log_group=log_group,
            ),
        )
        task_definition.task_role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("AWSXRayDaemonWriteAccess")
        )

    def configure_autoscaling(self) -> ecs.ScalableTaskCount:
        scaling = self.fargate_service.service.auto_scale_task_count(
            min_capacity=self.config.min_capacity,
            max_capacity=self.config.max_capacity,
        )
        scaling.scale_on_cpu_utilization(
            "CpuScaling",
            target_utilization_percent=self.config.cpu_target_utilization,
            scale_in_cooldown=Duration.seconds(120),
            scale_out_cooldown=Duration.seconds(60),
        )
        scaling.scale_on_memory_utilization(
            "MemoryScaling",
            target_utilization_percent=self.config.memory_target_utilization,
            scale_in_cooldown=Duration.seconds(120),
            scale_out_cooldown=Duration.seconds(60),
        )
        scaling.scale_on_request_count(
            "RequestScaling",
            requests_per_target=self.config.requests_per_target,
            target_group=self.fargate_service.target_group,
            scale_in_cooldown=Duration.seconds(120),
            scale_out_cooldown=Duration.seconds(60),
        )
        return scaling

    def create_pipeline(self) -> codepipeline.Pipeline:
        artifact_bucket = s3.Bucket(
            self,
            "ArtifactBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            versioned=True,
            lifecycle_rules=[
                s3.LifecycleRule(
                    expiration=Duration.days(30),
                    noncurrent_version_expiration=Duration.days(30),
                    abort_incomplete_multipart_upload_after=Duration.days(1),
                )
            ],
        )

        # Source stage
        source_output = codepipeline.Artifact("SourceOutput")
        source_action = pipeline_actions.GitHubSourceAction(
            action_name="GitHub_Source",
            owner=self.config.github_owner,
            repo=self.config.github_repo,
            branch=self.config.github_branch,
            oauth_token=SecretValue.secrets_manager(self.config.github_token_secret),
            output=source_output,
            trigger=pipeline_actions.GitHubTrigger.WEBHOOK,
        )

        # Build stage
        build_output = codepipeline.Artifact("BuildOutput")
        build_action = pipeline_actions.CodeBuildAction(
            action_name="Image_Build",
            project=self.pipeline_project,
            input=source_output,
            outputs=[build_output],
        )

        # Deploy stage
        deploy_action = pipeline_actions.EcsDeployAction(
            action_name="Ecs_Deploy",
            service=self.fargate_service.service,
            input=build_output,
        )

        return codepipeline.Pipeline(
            self,
            "Pipeline",
            pipeline_name=self.config.pipeline_name,
            artifact_bucket=artifact_bucket,
            restart_execution_on_update=True,
            stages=[
                codepipeline.StageProps(stage_name="Source", actions=[source_action]),
                codepipeline.StageProps(stage_name="Build", actions=[build_action]),
                codepipeline.StageProps(stage_name="Deploy", actions=[deploy_action]),
            ],
        )

    def create_alarm_topic(self) -> sns.Topic:
        topic = sns.Topic(
            self,
            "AlarmTopic",
            display_name=f"{self.config.pipeline_name} alarms",
        )

        if self.config.alarm_email:
            topic.add_subscription(
                subscriptions.EmailSubscription(self.config.alarm_email)
            )
        else:
            Annotations.of(self).add_info(
                "alarmEmail is not set; alarm notifications have no subscribers"
            )

        self.pipeline.on_state_change(
            "PipelineFailed",
            description="Notify on failed pipeline executions",
            event_pattern=events.EventPattern(detail={"state": ["FAILED"]}),
            target=targets.SnsTopic(
                topic,
                message=events.RuleTargetInput.from_text(
                    f"Pipeline {self.config.pipeline_name} failed: "
                    f"{events.EventField.from_path('$.detail.execution-id')}"
                ),
            ),
        )
        return topic
