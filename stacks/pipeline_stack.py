from aws_cdk import (
    Stack,
    CfnOutput,
    SecretValue,
    Tags,
    Token,
    aws_codepipeline as codepipeline,
)
from constructs import Construct

from stacks.artifact_store import ArtifactStore
from stacks.build_project import BuildProject
from stacks.iam_role import IamRoleBinding
from stacks.pipeline_stages import (
    build_stage,
    deploy_stage,
    source_stage,
    validate_stages,
)

class PipelineStack(Stack):
    """
    Deploys the CloudFormation delivery pipeline.

    This stack automates the following workflow:
    1. Source: Pulls the configured branch from GitHub (polling or webhook).
    2. Build: Runs the caller's buildspec in CodeBuild, which must emit `packaged.yaml`.
    3. Deploy: Creates a change set against the target stack, then executes it.
    """

    def __init__(self, scope: Construct, construct_id: str, config, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # =================================================================
        # 1. ARTIFACT STORE
        # =================================================================
        # Temporary storage for data passing between pipeline stages
        self.artifact_store = ArtifactStore(self, "ArtifactStore", config=config)
        bucket_arn = self.artifact_store.bucket_arn

        # =================================================================
        # 2. CODEBUILD PROJECT CONFIGURATION (BUILD ENGINE)
        # =================================================================
        # The project ARN has to exist before the CodePipeline policy can reference it
        self.codebuild_role = IamRoleBinding(self, "CodeBuildRole",
            role_name=config.name_for("codebuild"),
            template="codebuild",
            role_vars={"bucket_arn": bucket_arn}
        )
        self.build_project = BuildProject(self, "BuildProject",
            config=config,
            artifact_store=self.artifact_store,
            role=self.codebuild_role
        )

        # =================================================================
        # 3. PIPELINE & DEPLOYMENT ROLES
        # =================================================================
        self.codepipeline_role = IamRoleBinding(self, "CodePipelineRole",
            role_name=config.name_for("codepipeline"),
            template="codepipeline",
            role_vars={
                "bucket_arn": bucket_arn,
                "codebuild_project_arn": self.build_project.project_arn
            }
        )
        # CloudFormation may pass the pipeline role on to resources it creates
        self.cloudformation_role = IamRoleBinding(self, "CloudFormationRole",
            role_name=config.name_for("cloudformation"),
            template="cloudformation",
            role_vars={
                "bucket_arn": bucket_arn,
                "codepipeline_role_arn": self.codepipeline_role.role_arn
            }
        )

        # =================================================================
        # 4. CODEPIPELINE ORCHESTRATION
        # =================================================================
        # Resolved by CloudFormation at deploy time. Rotating the token out of band
        # leaves the template unchanged, so the Source stage never drifts.
        github_token = SecretValue.secrets_manager(config.github_token).unsafe_unwrap()

        stages = [
            # STAGE 1: Download source code from GitHub
            source_stage(
                owner=config.github_owner,
                repo=config.github_repo,
                branch=config.github_branch,
                oauth_token=github_token,
                poll_source_changes=config.poll_source_changes
            ),
            # STAGE 2: Build and package the CloudFormation template
            build_stage(self.build_project.project_name),
            # STAGE 3: Create, then execute, the change set
            deploy_stage(
                stack_name=config.stack_name,
                change_set_name=config.name_for("changes"),
                cloudformation_role_arn=self.cloudformation_role.role_arn
            ),
        ]
        validate_stages(stages)

        self.pipeline = codepipeline.CfnPipeline(self, "Pipeline",
            name=config.resource_name,
            role_arn=self.codepipeline_role.role_arn,
            artifact_store=codepipeline.CfnPipeline.ArtifactStoreProperty(
                type="S3",
                location=self.artifact_store.bucket_name
            ),
            stages=[stage.to_property() for stage in stages]
        )
        self.pipeline.node.add_dependency(self.codepipeline_role, self.cloudformation_role)

        # =================================================================
        # 5. SOURCE TRIGGER
        # =================================================================
        self.webhook = None
        if config.poll_source_changes:
            print(f"⏱️ {config.resource_name}: polling GitHub for changes on '{config.github_branch}'")
        else:
            print(f"🔔 {config.resource_name}: registering GitHub webhook for '{config.github_branch}'")
            webhook_secret = SecretValue.secrets_manager(config.github_webhook_secret).unsafe_unwrap()
            self.webhook = codepipeline.CfnWebhook(self, "Webhook",
                name=config.name_for("webhook"),
                authentication="GITHUB_HMAC",
                authentication_configuration=codepipeline.CfnWebhook.WebhookAuthConfigurationProperty(
                    secret_token=webhook_secret
                ),
                filters=[
                    codepipeline.CfnWebhook.WebhookFilterRuleProperty(
                        json_path="$.ref",
                        match_equals="refs/heads/{Branch}"
                    )
                ],
                target_pipeline=self.pipeline.ref,
                target_pipeline_version=Token.as_number(self.pipeline.attr_version),
                target_action=stages[0].actions[0].name,
                register_with_third_party=True
            )

        # =================================================================
        # 6. TAGS & OUTPUTS
        # =================================================================
        Tags.of(self).add("Name", config.resource_name)
        Tags.of(self).add("Namespace", config.namespace)
        Tags.of(self).add("ResourceTagName", config.resource_tag_name)

        CfnOutput(self, "ArtifactBucketName", value=self.artifact_store.bucket_name)
        CfnOutput(self, "CodeBuildRoleArn", value=self.codebuild_role.role_arn)
        CfnOutput(self, "CodePipelineRoleArn", value=self.codepipeline_role.role_arn)
        CfnOutput(self, "CloudFormationRoleArn", value=self.cloudformation_role.role_arn)
        CfnOutput(self, "CodeBuildProjectName", value=self.build_project.project_name)
        CfnOutput(self, "CodeBuildProjectArn", value=self.build_project.project_arn)
        CfnOutput(self, "PipelineName", value=self.pipeline.ref)
        if self.webhook is not None:
            CfnOutput(self, "WebhookUrl", value=self.webhook.attr_url)
