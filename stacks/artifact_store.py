from aws_cdk import (
    Duration,
    RemovalPolicy,
    aws_s3 as s3,
)
from constructs import Construct

ARTIFACT_EXPIRATION_DAYS = 5


class ArtifactStore(Construct):
    """
    Private, encrypted, short-lived bucket shared by every pipeline stage.
    Artifacts only need to outlive a single pipeline run.
    """
    def __init__(self, scope: Construct, construct_id: str, config) -> None:
        super().__init__(scope, construct_id)

        self.bucket = s3.Bucket(self, "Bucket",
            bucket_name=config.name_for("artifacts"),
            encryption=s3.BucketEncryption.KMS_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="expire-artifacts",
                    expiration=Duration.days(ARTIFACT_EXPIRATION_DAYS)
                )
            ],
            # Destroying the stack empties the bucket first
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True
        )

    @property
    def bucket_arn(self) -> str:
        return self.bucket.bucket_arn

    @property
    def bucket_name(self) -> str:
        return self.bucket.bucket_name
