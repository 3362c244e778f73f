"""Pre-defined workflow templates for common flows."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .workflow_engine.context import WorkflowContext
from .workflow_engine.steps import Step, WorkflowDefinition

logger = logging.getLogger(__name__)


class OnboardingWorkflow:
    """First-run onboarding: terms, security setup and agent initialization."""

    @staticmethod
    def create(
        initialize_agent: Optional[Callable[[WorkflowContext], Any]] = None,
        terms_version: str = "1.0",
    ) -> WorkflowDefinition:
        """Create onboarding workflow.

        The biometry step is conditional: it completes without navigation when
        the ``biometry_available`` data flag is false.

        Args:
            initialize_agent: Headless hook that sets up the wallet agent and
                completes the step through its context. Defaults to completing
                immediately.
            terms_version: Version string passed to the terms screen

        Returns:
            Workflow definition
        """

        def default_initialize(ctx: WorkflowContext) -> None:
            ctx.set_data("agent_ready", True)
            ctx.complete_step()

        steps: List[Step] = [
            Step(id="preface", name="Preface", screen="Preface"),
            Step(
                id="terms",
                name="Accept Terms",
                screen="Terms",
                dependencies={"preface"},
                params={"version": terms_version, "accepted": "{{terms_accepted}}"},
            ),
            Step(
                id="biometry",
                name="Use Biometry",
                screen="UseBiometry",
                required=False,
                dependencies={"terms"},
                completion_condition=lambda ctx: not ctx.get_data("biometry_available", False),
                metadata={"conditional": True},
            ),
            Step(id="pin", name="Create PIN", screen="CreatePIN", dependencies={"terms"}),
            Step(
                id="push_notifications",
                name="Push Notifications",
                screen="PushNotifications",
                required=False,
                dependencies={"pin"},
            ),
            Step(
                id="initialize_agent",
                name="Initialize Agent",
                headless=True,
                dependencies={"pin"},
                on_activate=initialize_agent or default_initialize,
            ),
        ]

        return WorkflowDefinition(
            id="onboarding",
            name="Onboarding",
            description="Terms, PIN setup and agent initialization on first launch",
            steps=steps,
            pausable=True,
            skippable=False,
        )


class DeviceAuthorizationWorkflow:
    """Device-code authorization: request a code, confirm it, poll for tokens."""

    @staticmethod
    def create(
        request_device_code: Optional[Callable[[], Dict[str, Any]]] = None,
        check_device_code_status: Optional[Callable[[str, str], Optional[Dict[str, Any]]]] = None,
    ) -> WorkflowDefinition:
        """Create device authorization workflow.

        Args:
            request_device_code: Returns ``{"device_code": ..., "user_code": ...}``
            check_device_code_status: Called with the device code and the
                confirmation code; returns token data once authorized

        Returns:
            Workflow definition
        """
        request = request_device_code or (lambda: {"device_code": "device", "user_code": "0000"})
        check = check_device_code_status or (lambda device_code, confirmation: {"access_token": "token"})

        def request_code(ctx: WorkflowContext) -> None:
            ctx.complete_step(data=request())

        def poll_tokens(ctx: WorkflowContext) -> None:
            tokens = check(ctx.get_data("device_code"), ctx.get_data("confirmation_code", ""))
            if tokens and ctx.is_active():
                ctx.set_data("tokens", tokens)

        steps = [
            Step(
                id="request_device_code",
                name="Request Device Code",
                headless=True,
                on_activate=request_code,
            ),
            Step(
                id="enter_confirmation",
                name="Enter Confirmation Code",
                screen="EnterConfirmationCode",
                dependencies={"request_device_code"},
                params={"userCode": "{{user_code}}"},
            ),
            Step(
                id="poll_tokens",
                name="Poll Token Status",
                headless=True,
                dependencies={"enter_confirmation"},
                on_activate=poll_tokens,
                completion_condition=lambda ctx: ctx.get_data("tokens") is not None,
            ),
        ]

        return WorkflowDefinition(
            id="device_authorization",
            name="Device Authorization",
            description="OAuth device-code flow driven by a confirmation screen",
            steps=steps,
            pausable=False,
            skippable=False,
        )


TEMPLATES = {
    "onboarding": OnboardingWorkflow,
    "device_authorization": DeviceAuthorizationWorkflow,
}


def get_workflow_template(template_name: str, **kwargs) -> Optional[WorkflowDefinition]:
    """Get pre-defined workflow template.

    Args:
        template_name: Name of template
        **kwargs: Template-specific parameters

    Returns:
        Workflow definition or None
    """
    template_class = TEMPLATES.get(template_name.lower())
    if template_class:
        return template_class.create(**kwargs)

    logger.warning(f"Unknown workflow template: {template_name}")
    return None
