import pytest

from config import PipelineConfig


def make_config(**overrides) -> PipelineConfig:
    values = dict(
        namespace="acme",
        resource_tag_name="orders",
        region="us-east-1",
        github_token="github/token",
        github_owner="acme-corp",
        github_repo="orders-api",
        github_branch="release",
        stack_name="orders-api",
        build_compute_type="BUILD_GENERAL1_SMALL",
        build_image="aws/codebuild/standard:7.0",
    )
    values.update(overrides)
    return PipelineConfig(**values)


@pytest.fixture
def config_factory():
    return make_config
