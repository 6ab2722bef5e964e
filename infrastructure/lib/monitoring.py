from aws_cdk import (
    aws_codebuild as codebuild,
    aws_ecs_patterns as ecs_patterns,
    aws_sns as sns,
)
from cdk_monitoring_constructs import (
    AlarmFactoryDefaults,
    DefaultDashboardFactory,
    ErrorCountThreshold,
    HealthyTaskCountThreshold,
    MetricFactoryDefaults,
    MonitoringFacade,
    SnsAlarmActionStrategy,
    UsageThreshold,
)
from constructs import Construct

from infrastructure.lib.config import FargatePipelineConfig

CPU_USAGE_ALARM_PERCENT = 80
MEMORY_USAGE_ALARM_PERCENT = 90


def create_monitoring(
    scope: Construct,
    config: FargatePipelineConfig,
    fargate_service: ecs_patterns.ApplicationLoadBalancedFargateService,
    build_project: codebuild.IProject,
    alarm_topic: sns.ITopic,
) -> MonitoringFacade:
    """Dashboards and alarms for the Fargate service and its build project."""
    monitoring = MonitoringFacade(
        scope,
        "Monitoring",
        alarm_factory_defaults=AlarmFactoryDefaults(
            actions_enabled=True,
            alarm_name_prefix=config.dashboard_name,
            action=SnsAlarmActionStrategy(on_alarm_topic=alarm_topic),
        ),
        metric_factory_defaults=MetricFactoryDefaults(),
        dashboard_factory=DefaultDashboardFactory(
            scope,
            "Dashboards",
            dashboard_name_prefix=config.dashboard_name,
            create_dashboard=True,
            create_alarm_dashboard=True,
        ),
    )

    monitoring.add_large_header(f"{config.container_name} service")
    monitoring.monitor_fargate_service(
        fargate_service=fargate_service,
        human_readable_name=config.container_name,
        add_cpu_usage_alarm={
            "Warning": UsageThreshold(max_usage_percent=CPU_USAGE_ALARM_PERCENT)
        },
        add_memory_usage_alarm={
            "Warning": UsageThreshold(max_usage_percent=MEMORY_USAGE_ALARM_PERCENT)
        },
        add_healthy_task_count_alarm={
            "Critical": HealthyTaskCountThreshold(
                min_healthy_tasks=config.min_capacity
            )
        },
    )

    monitoring.add_large_header(f"{config.pipeline_name} build")
    monitoring.monitor_code_build_project(
        project=build_project,
        add_failed_build_count_alarm={
            "Warning": ErrorCountThreshold(max_error_count=0)
        },
    )

    return monitoring
