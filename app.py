import aws_cdk as cdk
from config import get_config
from stacks.pipeline_stack import PipelineStack

app = cdk.App()
config = get_config(app)

# =================================================================
# DEPLOYMENT PIPELINE (Source -> Build -> Deploy)
# =================================================================
# Every resource in the stack is named after "<namespace>-<resource_tag_name>".
pipeline_env = cdk.Environment(account=config.account, region=config.region)
PipelineStack(
    app, config.name_for("pipeline"),
    config=config,
    env=pipeline_env,
    description=f"CloudFormation delivery pipeline for {config.github_owner}/{config.github_repo}"
)

app.synth()
