from aws_cdk import aws_codebuild as codebuild
from constructs import Construct


class BuildProject(Construct):
    """
    CodeBuild project driven entirely by CodePipeline.
    Reads the `source` artifact and emits one artifact, both passed through the artifact store.
    """
    def __init__(self, scope: Construct, construct_id: str, config, artifact_store, role) -> None:
        super().__init__(scope, construct_id)

        self.project = codebuild.CfnProject(self, "Project",
            name=config.name_for("build"),
            service_role=role.role_arn,
            badge_enabled=config.badge_enabled,
            timeout_in_minutes=config.build_timeout,
            source=codebuild.CfnProject.SourceProperty(
                type="CODEPIPELINE",
                build_spec=config.buildspec
            ),
            # BUILD_ID namespacing keeps concurrent executions from overwriting each other
            artifacts=codebuild.CfnProject.ArtifactsProperty(
                type="CODEPIPELINE",
                packaging="ZIP",
                namespace_type="BUILD_ID"
            ),
            environment=codebuild.CfnProject.EnvironmentProperty(
                type="LINUX_CONTAINER",
                compute_type=config.build_compute_type,
                image=config.build_image,
                privileged_mode=config.privileged_mode,
                environment_variables=[
                    codebuild.CfnProject.EnvironmentVariableProperty(
                        name="ARTIFACT_BUCKET",
                        type="PLAINTEXT",
                        value=artifact_store.bucket_name
                    )
                ]
            )
        )
        # The role's policy must be attached before the first build runs
        self.project.node.add_dependency(role)

    @property
    def project_name(self) -> str:
        return self.project.ref

    @property
    def project_arn(self) -> str:
        return self.project.attr_arn
