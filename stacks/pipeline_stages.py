from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from aws_cdk import aws_codepipeline as codepipeline

SOURCE_ARTIFACT = "source"
BUILD_ARTIFACT = "build"

PACKAGED_TEMPLATE = "packaged.yaml"
DEPLOY_CAPABILITIES = "CAPABILITY_IAM,CAPABILITY_AUTO_EXPAND"

CHANGE_SET_REPLACE = "CHANGE_SET_REPLACE"
CHANGE_SET_EXECUTE = "CHANGE_SET_EXECUTE"


class PipelineDefinitionError(ValueError):
    pass


@dataclass(frozen=True)
class ActionSpec:
    name: str
    category: str
    owner: str
    provider: str
    configuration: Dict[str, str] = field(default_factory=dict)
    version: str = "1"
    run_order: int = 1
    input_artifacts: Tuple[str, ...] = ()
    output_artifacts: Tuple[str, ...] = ()
    role_arn: Optional[str] = None

    @property
    def change_set_mode(self) -> Optional[str]:
        if self.provider != "CloudFormation":
            return None
        mode = self.configuration.get("ActionMode")
        if mode in (CHANGE_SET_REPLACE, CHANGE_SET_EXECUTE):
            return mode
        return None

    def to_property(self) -> codepipeline.CfnPipeline.ActionDeclarationProperty:
        return codepipeline.CfnPipeline.ActionDeclarationProperty(
            name=self.name,
            action_type_id=codepipeline.CfnPipeline.ActionTypeIdProperty(
                category=self.category,
                owner=self.owner,
                provider=self.provider,
                version=self.version
            ),
            run_order=self.run_order,
            configuration=dict(self.configuration),
            input_artifacts=[
                codepipeline.CfnPipeline.InputArtifactProperty(name=name) for name in self.input_artifacts
            ] or None,
            output_artifacts=[
                codepipeline.CfnPipeline.OutputArtifactProperty(name=name) for name in self.output_artifacts
            ] or None,
            role_arn=self.role_arn
        )


@dataclass(frozen=True)
class StageSpec:
    name: str
    actions: Tuple[ActionSpec, ...]

    def to_property(self) -> codepipeline.CfnPipeline.StageDeclarationProperty:
        return codepipeline.CfnPipeline.StageDeclarationProperty(
            name=self.name,
            actions=[action.to_property() for action in self.actions]
        )


def source_stage(owner: str, repo: str, branch: str, oauth_token: str, poll_source_changes: bool) -> StageSpec:
    """GitHub checkout. With polling off, a webhook has to trigger the pipeline instead."""
    return StageSpec("Source", (
        ActionSpec(
            name="Source",
            category="Source",
            owner="ThirdParty",
            provider="GitHub",
            configuration={
                "Owner": owner,
                "Repo": repo,
                "Branch": branch,
                "OAuthToken": oauth_token,
                "PollForSourceChanges": "true" if poll_source_changes else "false",
            },
            output_artifacts=(SOURCE_ARTIFACT,)
        ),
    ))


def build_stage(project_name: str) -> StageSpec:
    return StageSpec("Build", (
        ActionSpec(
            name="Build",
            category="Build",
            owner="AWS",
            provider="CodeBuild",
            configuration={"ProjectName": project_name},
            input_artifacts=(SOURCE_ARTIFACT,),
            output_artifacts=(BUILD_ARTIFACT,)
        ),
    ))


def deploy_stage(stack_name: str, change_set_name: str, cloudformation_role_arn: str) -> StageSpec:
    """
    Creates a change set from the packaged template in the build artifact, then executes it.
    Both actions name the same change set; run_order keeps them in sequence.
    """
    return StageSpec("Deploy", (
        ActionSpec(
            name="CreateChangeSet",
            category="Deploy",
            owner="AWS",
            provider="CloudFormation",
            configuration={
                "ActionMode": CHANGE_SET_REPLACE,
                "Capabilities": DEPLOY_CAPABILITIES,
                "ChangeSetName": change_set_name,
                "RoleArn": cloudformation_role_arn,
                "StackName": stack_name,
                "TemplatePath": f"{BUILD_ARTIFACT}::{PACKAGED_TEMPLATE}",
            },
            input_artifacts=(BUILD_ARTIFACT,),
            run_order=1
        ),
        ActionSpec(
            name="Deploy",
            category="Deploy",
            owner="AWS",
            provider="CloudFormation",
            configuration={
                "ActionMode": CHANGE_SET_EXECUTE,
                "ChangeSetName": change_set_name,
                "StackName": stack_name,
            },
            run_order=2
        ),
    ))


def _check_change_sets(stage: StageSpec) -> None:
    created = {}
    executed = []
    for action in stage.actions:
        mode = action.change_set_mode
        if mode is None:
            continue
        name = action.configuration.get("ChangeSetName")
        if not name:
            raise PipelineDefinitionError(f"{stage.name}/{action.name}: change set action has no ChangeSetName")
        if mode == CHANGE_SET_REPLACE:
            created[name] = min(action.run_order, created.get(name, action.run_order))
        else:
            executed.append((action, name))

    names = set(created) | {name for _, name in executed}
    if len(names) > 1:
        raise PipelineDefinitionError(
            f"{stage.name}: change set actions must share one ChangeSetName, got {sorted(names)}"
        )
    for action, name in executed:
        if name not in created:
            raise PipelineDefinitionError(
                f"{stage.name}/{action.name}: executes change set '{name}' which no earlier action creates"
            )
        if action.run_order <= created[name]:
            raise PipelineDefinitionError(
                f"{stage.name}/{action.name}: must run after the action creating '{name}' "
                f"(run_order {action.run_order} <= {created[name]})"
            )


def validate_stages(stages: Iterable[StageSpec]) -> None:
    """
    Raises PipelineDefinitionError unless the stages form a strict linear artifact chain:
    every input is produced by an earlier stage (or an earlier run_order in the same stage),
    every artifact is produced once and consumed exactly once, and actions have at most one input
    and one output.
    """
    stage_names = set()
    available = set()
    consumed = set()

    for stage in stages:
        if stage.name in stage_names:
            raise PipelineDefinitionError(f"Duplicate stage name '{stage.name}'")
        stage_names.add(stage.name)
        if not stage.actions:
            raise PipelineDefinitionError(f"{stage.name}: stage has no actions")

        action_names = set()
        for action in stage.actions:
            if action.name in action_names:
                raise PipelineDefinitionError(f"{stage.name}: duplicate action name '{action.name}'")
            action_names.add(action.name)
            if action.run_order < 1:
                raise PipelineDefinitionError(f"{stage.name}/{action.name}: run_order must be positive")
            if len(action.input_artifacts) > 1 or len(action.output_artifacts) > 1:
                raise PipelineDefinitionError(
                    f"{stage.name}/{action.name}: at most one input and one output artifact allowed"
                )

        for run_order in sorted({action.run_order for action in stage.actions}):
            batch = [action for action in stage.actions if action.run_order == run_order]
            for action in batch:
                for artifact in action.input_artifacts:
                    if artifact not in available:
                        raise PipelineDefinitionError(
                            f"{stage.name}/{action.name}: input artifact '{artifact}' is not produced upstream"
                        )
                    if artifact in consumed:
                        raise PipelineDefinitionError(
                            f"{stage.name}/{action.name}: artifact '{artifact}' is consumed more than once"
                        )
                    consumed.add(artifact)
            for action in batch:
                for artifact in action.output_artifacts:
                    if artifact in available:
                        raise PipelineDefinitionError(
                            f"{stage.name}/{action.name}: artifact '{artifact}' is produced more than once"
                        )
                    available.add(artifact)

        _check_change_sets(stage)

    unused = available - consumed
    if unused:
        raise PipelineDefinitionError(f"Artifacts produced but never consumed: {sorted(unused)}")
