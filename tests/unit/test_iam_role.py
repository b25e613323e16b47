import aws_cdk as core
import aws_cdk.assertions as assertions
import pytest

from stacks import iam_role
from stacks.iam_role import IamRoleBinding, PolicyTemplateError, render_policy

BUCKET_ARN = "arn:aws:s3:::acme-orders-artifacts"


def test_render_substitutes_role_vars():
    document = render_policy("codebuild_policy", {"bucket_arn": BUCKET_ARN})

    resources = [statement["Resource"] for statement in document["Statement"]]
    assert resources == ["*", BUCKET_ARN, f"{BUCKET_ARN}/*"]


def test_render_assume_role_ignores_unused_vars():
    document = render_policy("cloudformation_assume_role", {"bucket_arn": BUCKET_ARN})

    assert document["Statement"][0]["Principal"] == {"Service": "cloudformation.amazonaws.com"}
    assert document["Statement"][0]["Action"] == "sts:AssumeRole"


def test_render_missing_variable_names_template_and_variable():
    with pytest.raises(PolicyTemplateError, match="codepipeline_policy.*codebuild_project_arn"):
        render_policy("codepipeline_policy", {"bucket_arn": BUCKET_ARN})


def test_render_escapes_quotes_and_backslashes():
    value = 'arn:aws:s3:::odd"name\\path'

    document = render_policy("codebuild_policy", {"bucket_arn": value})

    assert document["Statement"][1]["Resource"] == value
    assert document["Statement"][2]["Resource"] == f"{value}/*"


def test_render_invalid_json(tmp_path, monkeypatch):
    (tmp_path / "broken.json").write_text('{"Statement": [${statement}]')
    monkeypatch.setattr(iam_role, "POLICY_DIR", str(tmp_path))

    with pytest.raises(PolicyTemplateError, match="not valid JSON"):
        render_policy("broken", {"statement": "{}"})


def test_render_malformed_placeholder(tmp_path, monkeypatch):
    (tmp_path / "malformed.json").write_text('{"Resource": "${bucket arn}"}')
    monkeypatch.setattr(iam_role, "POLICY_DIR", str(tmp_path))

    with pytest.raises(PolicyTemplateError, match="malformed"):
        render_policy("malformed", {"bucket_arn": BUCKET_ARN})


def test_binding_creates_role_with_attached_policy():
    app = core.App()
    stack = core.Stack(app, "roles")
    binding = IamRoleBinding(stack, "CodeBuildRole",
        role_name="acme-orders-codebuild",
        template="codebuild",
        role_vars={"bucket_arn": BUCKET_ARN}
    )
    template = assertions.Template.from_stack(stack)

    template.resource_count_is("AWS::IAM::Role", 1)
    template.has_resource_properties("AWS::IAM::Role", {
        "RoleName": "acme-orders-codebuild",
        "AssumeRolePolicyDocument": {
            "Statement": [{"Principal": {"Service": "codebuild.amazonaws.com"}}]
        }
    })
    template.has_resource_properties("AWS::IAM::Policy", {
        "PolicyName": "acme-orders-codebuild",
        "Roles": [{"Ref": stack.resolve(binding.role.logical_id)}],
        "PolicyDocument": {
            "Statement": assertions.Match.array_with([
                assertions.Match.object_like({"Sid": "ArtifactObjects", "Resource": f"{BUCKET_ARN}/*"})
            ])
        }
    })
