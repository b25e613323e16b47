import os
import re
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from a .env file
load_dotenv()

# Lowercase alphanumerics and hyphens, since the composed name ends up in an S3 bucket name
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")

TRUE_VALUES = ("true", "1", "yes")
FALSE_VALUES = ("false", "0", "no")

MIN_BUILD_TIMEOUT = 5
MAX_BUILD_TIMEOUT = 2160

# IAM role and policy names are capped at 64 characters; "-cloudformation" is the longest suffix
MAX_RESOURCE_NAME_LENGTH = 64 - len("-cloudformation")


class PipelineConfig:
    """
    Stores the inputs of the deployment pipeline.
    Every child resource name is derived from `resource_name`.
    """
    def __init__(
        self,
        namespace: str,
        resource_tag_name: str,
        region: str,
        github_token: str,
        github_owner: str,
        github_repo: str,
        stack_name: str,
        build_compute_type: str,
        build_image: str,
        account: Optional[str] = None,
        github_branch: str = "main",
        github_webhook_secret: Optional[str] = None,
        poll_source_changes: bool = False,
        build_timeout: int = 60,
        badge_enabled: bool = False,
        privileged_mode: bool = False,
        buildspec: str = "buildspec.yml"
    ):
        for key, value in (("namespace", namespace), ("resource_tag_name", resource_tag_name)):
            if not NAME_PATTERN.match(value or ""):
                raise ValueError(
                    f"❌ INVALID CONFIG: '{key}' must be lowercase letters, digits and hyphens, got {value!r}"
                )
        resource_name = f"{namespace}-{resource_tag_name}"
        if len(resource_name) > MAX_RESOURCE_NAME_LENGTH:
            raise ValueError(
                f"❌ INVALID CONFIG: 'namespace' and 'resource_tag_name' compose '{resource_name}' "
                f"({len(resource_name)} characters), the limit is {MAX_RESOURCE_NAME_LENGTH}"
            )
        if not MIN_BUILD_TIMEOUT <= build_timeout <= MAX_BUILD_TIMEOUT:
            raise ValueError(
                f"❌ INVALID CONFIG: 'build_timeout' must be between {MIN_BUILD_TIMEOUT} "
                f"and {MAX_BUILD_TIMEOUT} minutes, got {build_timeout}"
            )

        self.namespace = namespace
        self.resource_tag_name = resource_tag_name
        self.region = region
        self.account = account

        # GitHub Configuration
        # The token is the id of a Secrets Manager secret, never the token itself
        self.github_token = github_token
        self.github_webhook_secret = github_webhook_secret or github_token
        self.github_owner = github_owner
        self.github_repo = github_repo
        self.github_branch = github_branch
        self.poll_source_changes = poll_source_changes

        # Deploy target
        self.stack_name = stack_name

        # Build environment
        self.build_timeout = build_timeout
        self.badge_enabled = badge_enabled
        self.build_compute_type = build_compute_type
        self.build_image = build_image
        self.privileged_mode = privileged_mode
        self.buildspec = buildspec

    @property
    def resource_name(self) -> str:
        return f"{self.namespace}-{self.resource_tag_name}"

    def name_for(self, suffix: str) -> str:
        return f"{self.resource_name}-{suffix}"


def lookup(scope, key: str) -> Optional[str]:
    """
    Reads a value from CDK context first (cdk synth -c key=value), then from the environment.
    """
    value = scope.node.try_get_context(key)
    if value is None:
        value = os.getenv(key.upper())
    if value is None or value == "":
        return None
    return str(value)

def get_required(scope, key: str) -> str:
    """
    Retrieves a required input or raises a RuntimeError if missing.
    """
    value = lookup(scope, key)
    if not value:
        raise RuntimeError(
            f"❌ MISSING CONFIG: Required value '{key}' not found in CDK context or environment ({key.upper()})"
        )
    return value

def parse_bool(key: str, value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"❌ INVALID CONFIG: '{key}' must be a boolean, got {value!r}")

def parse_int(key: str, value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"❌ INVALID CONFIG: '{key}' must be an integer, got {value!r}") from None

def get_region(scope) -> str:
    """
    The region comes from the `region` context key, then REGION or AWS_REGION in the environment.
    """
    region = lookup(scope, "region") or lookup(scope, "aws_region")
    if not region:
        raise RuntimeError(
            "❌ MISSING CONFIG: Required value 'region' not found in CDK context (region) "
            "or environment (REGION, AWS_REGION)"
        )
    return region

def get_config(scope) -> PipelineConfig:
    """
    Factory function to generate the PipelineConfig object from CDK context and the environment.
    Usage: cdk deploy -c namespace=acme -c resource_tag_name=orders
    """
    config = PipelineConfig(
        namespace=get_required(scope, "namespace"),
        resource_tag_name=get_required(scope, "resource_tag_name"),
        region=get_region(scope),
        account=lookup(scope, "account") or os.getenv("CDK_DEFAULT_ACCOUNT"),
        github_token=get_required(scope, "github_token"),
        github_webhook_secret=lookup(scope, "github_webhook_secret"),
        github_owner=get_required(scope, "github_owner"),
        github_repo=get_required(scope, "github_repo"),
        github_branch=lookup(scope, "github_branch") or "main",
        poll_source_changes=parse_bool("poll_source_changes", lookup(scope, "poll_source_changes")),
        stack_name=get_required(scope, "stack_name"),
        build_timeout=parse_int("build_timeout", lookup(scope, "build_timeout"), 60),
        badge_enabled=parse_bool("badge_enabled", lookup(scope, "badge_enabled")),
        build_compute_type=get_required(scope, "build_compute_type"),
        build_image=get_required(scope, "build_image"),
        privileged_mode=parse_bool("privileged_mode", lookup(scope, "privileged_mode")),
        buildspec=lookup(scope, "buildspec") or "buildspec.yml"
    )

    print(f"🔍 Initializing deployment pipeline: {config.resource_name} ({config.region})")
    return config
