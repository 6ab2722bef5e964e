from dataclasses import dataclass, fields
from typing import Optional

from constructs import Node

# Supported Fargate task sizes: cpu units -> (min memory, max memory, step) in MiB
FARGATE_TASK_SIZES = {
    256: (512, 2048, 512),
    512: (1024, 4096, 1024),
    1024: (2048, 8192, 1024),
    2048: (4096, 16384, 1024),
    4096: (8192, 30720, 1024),
}

# Retention periods accepted for the service log group, in days
LOG_RETENTION_DAYS = (1, 3, 5, 7, 14, 30, 60, 90, 180, 365)

_TRUE_VALUES = ("true", "yes", "1", "on")
_FALSE_VALUES = ("false", "no", "0", "off")


def _context_key(field_name: str) -> str:
    head, *rest = field_name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _coerce(key: str, value, target_type):
    if target_type is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError(f"Context value '{key}' must be a boolean, got: {value!r}")
    if target_type is int:
        if isinstance(value, bool):
            raise ValueError(f"Context value '{key}' must be an integer, got: {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(
                f"Context value '{key}' must be an integer, got: {value!r}"
            ) from None
    return str(value)


@dataclass
class FargatePipelineConfig:
    """
    Literal settings for the Fargate pipeline stack.

    Every field can be overridden from CDK context using its camelCase name,
    e.g. ``cdk synth -c containerPort=9090 -c enableXray=false``.
    """

    repository_name: str = "spring-boot-aws-fargate-test"

    # Source
    github_owner: str = "ivdmeer"
    github_repo: Optional[str] = None
    github_branch: str = "main"
    github_token_secret: str = "github/oauth/token"

    # Network
    vpc_cidr: str = "10.0.0.0/16"
    max_azs: int = 2
    nat_gateways: int = 1

    # Service
    container_name: Optional[str] = None
    container_port: int = 8080
    cpu: int = 256
    memory_limit_mib: int = 512
    bootstrap_image: str = "okaycloud/dummywebserver:latest"
    desired_count: int = 1
    health_check_path: str = "/"
    healthy_http_codes: str = "200"
    health_check_grace_period_seconds: int = 120
    log_retention_days: int = 14
    enable_xray: bool = True

    # Autoscaling
    min_capacity: int = 1
    max_capacity: int = 4
    cpu_target_utilization: int = 50
    memory_target_utilization: int = 70
    requests_per_target: int = 1000

    # Pipeline
    project_name: str = "my-codepipeline"
    pipeline_name: str = "my_pipeline"

    # Monitoring
    alarm_email: Optional[str] = None
    dashboard_name: str = "fargate-pipeline"

    def __post_init__(self):
        if not self.github_repo:
            self.github_repo = self.repository_name
        if not self.container_name:
            self.container_name = self.repository_name

    @classmethod
    def from_context(cls, node: Node) -> "FargatePipelineConfig":
        """Build a config from CDK context, falling back to the defaults."""
        overrides = {}
        for field in fields(cls):
            key = _context_key(field.name)
            value = node.try_get_context(key)
            if value is None:
                continue
            if field.type in (int, bool):
                overrides[field.name] = _coerce(key, value, field.type)
            else:
                overrides[field.name] = _coerce(key, value, str)
        return cls(**overrides)

    def validate(self) -> "FargatePipelineConfig":
        if self.cpu not in FARGATE_TASK_SIZES:
            raise ValueError(
                f"Unsupported Fargate cpu value: {self.cpu} "
                f"(expected one of {sorted(FARGATE_TASK_SIZES)})"
            )
        low, high, step = FARGATE_TASK_SIZES[self.cpu]
        if not (low <= self.memory_limit_mib <= high) or (
            self.memory_limit_mib - low
        ) % step:
            raise ValueError(
                f"Unsupported Fargate memory value {self.memory_limit_mib} "
                f"for cpu {self.cpu} (expected {low}-{high} in steps of {step})"
            )

        if not 1 <= self.container_port <= 65535:
            raise ValueError(f"Invalid container port: {self.container_port}")

        if self.min_capacity < 1:
            raise ValueError("minCapacity must be at least 1")
        if self.min_capacity > self.max_capacity:
            raise ValueError(
                f"minCapacity ({self.min_capacity}) must not exceed "
                f"maxCapacity ({self.max_capacity})"
            )
        if not self.min_capacity <= self.desired_count <= self.max_capacity:
            raise ValueError(
                f"desiredCount ({self.desired_count}) must be between "
                f"{self.min_capacity} and {self.max_capacity}"
            )

        for name in ("cpu_target_utilization", "memory_target_utilization"):
            value = getattr(self, name)
            if not 1 <= value <= 100:
                raise ValueError(
                    f"{_context_key(name)} must be between 1 and 100, got: {value}"
                )

        if self.requests_per_target < 1:
            raise ValueError("requestsPerTarget must be at least 1")
        if self.log_retention_days not in LOG_RETENTION_DAYS:
            raise ValueError(
                f"Unsupported logRetentionDays value: {self.log_retention_days} "
                f"(expected one of {list(LOG_RETENTION_DAYS)})"
            )
        if not self.health_check_path.startswith("/"):
            raise ValueError(
                f"healthCheckPath must start with '/', got: {self.health_check_path}"
            )
        return self
