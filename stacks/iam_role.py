import json
import os
from string import Template
from typing import Any, Dict

from aws_cdk import aws_iam as iam
from constructs import Construct

POLICY_DIR = os.path.join(os.path.dirname(__file__), "policies")


class PolicyTemplateError(ValueError):
    pass


def render_policy(template_name: str, role_vars: Dict[str, str]) -> Dict[str, Any]:
    """
    Loads `policies/<template_name>.json` and substitutes its `${name}` placeholders.
    Values are JSON-escaped, so they always land inside string literals.
    They may be unresolved CDK tokens; those are resolved again at synth time.
    """
    path = os.path.join(POLICY_DIR, f"{template_name}.json")
    with open(path, encoding="utf-8") as f:
        template = Template(f.read())

    try:
        rendered = template.substitute({key: json.dumps(str(value))[1:-1] for key, value in role_vars.items()})
    except KeyError as e:
        raise PolicyTemplateError(
            f"Policy template '{template_name}' references undefined variable {e.args[0]!r}"
        ) from None
    except ValueError as e:
        raise PolicyTemplateError(f"Policy template '{template_name}' is malformed: {e}") from None

    try:
        return json.loads(rendered)
    except json.JSONDecodeError as e:
        raise PolicyTemplateError(f"Policy template '{template_name}' is not valid JSON: {e}") from None


class IamRoleBinding(Construct):
    """
    A role usable by exactly one AWS service, built from two policy templates:
    - `<name>_assume_role`: the trust document
    - `<name>_policy`: the permissions document, attached as an inline policy

    Consumers should depend on the binding itself so the policy is attached
    before the role is put to use.
    """
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        role_name: str,
        template: str,
        role_vars: Dict[str, str]
    ) -> None:
        super().__init__(scope, construct_id)

        self.role = iam.CfnRole(self, "Role",
            role_name=role_name,
            assume_role_policy_document=render_policy(f"{template}_assume_role", role_vars)
        )

        self.policy = iam.CfnPolicy(self, "Policy",
            policy_name=role_name,
            policy_document=render_policy(f"{template}_policy", role_vars),
            roles=[self.role.ref]
        )

    @property
    def role_arn(self) -> str:
        return self.role.attr_arn

    @property
    def role_name(self) -> str:
        return self.role.ref
