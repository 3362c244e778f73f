"""Tests for the bundled workflow templates."""

import pytest

from src.orchestration.registry import validate_definition
from src.orchestration.templates import (
    TEMPLATES,
    DeviceAuthorizationWorkflow,
    OnboardingWorkflow,
    get_workflow_template,
)
from src.orchestration.workflow_engine import EngineStatus


class TestTemplateLookup:
    @pytest.mark.parametrize("name", sorted(TEMPLATES))
    def test_templates_are_valid(self, name):
        assert validate_definition(get_workflow_template(name)) == []

    def test_lookup_is_case_insensitive(self):
        assert get_workflow_template("Onboarding").id == "onboarding"

    def test_unknown_template(self, caplog):
        assert get_workflow_template("nope") is None
        assert "Unknown workflow template: nope" in caplog.text


class TestOnboardingWorkflow:
    """Drive onboarding through the engine."""

    def test_biometry_skipped_when_unavailable(self, engine, registry, navigator):
        registry.register(OnboardingWorkflow.create(terms_version="2.1"))
        engine.start("onboarding", {"terms_accepted": False})

        engine.complete_step("preface")
        assert navigator.calls[-1] == ("Terms", {"version": "2.1", "accepted": False})

        engine.complete_step("terms", {"terms_accepted": True})
        # biometry auto-completes, PIN is next
        assert engine.get_state().current_step_id == "pin"
        assert engine.get_state().is_step_completed("biometry")

        engine.complete_step("pin")
        assert engine.get_state().current_step_id == "push_notifications"

        engine.complete_step("push_notifications")
        # initialize_agent is headless and completes itself, finishing the workflow
        assert engine.get_status() == EngineStatus.IDLE
        assert navigator.screens == ["Preface", "Terms", "CreatePIN", "PushNotifications"]

    def test_biometry_shown_when_available(self, engine, registry, navigator):
        registry.register(OnboardingWorkflow.create())
        engine.start("onboarding", {"biometry_available": True})
        engine.complete_step("preface")
        engine.complete_step("terms")

        assert engine.get_state().current_step_id == "biometry"
        assert navigator.screens[-1] == "UseBiometry"

    def test_custom_initialize_hook(self, engine, registry):
        seen = []

        def initialize(ctx):
            seen.append(ctx.current_step.id)
            ctx.complete_step(data={"agent": "custom"})

        registry.register(OnboardingWorkflow.create(initialize_agent=initialize))
        engine.start("onboarding")
        for step_id in ("preface", "terms", "pin", "push_notifications"):
            engine.complete_step(step_id)

        assert seen == ["initialize_agent"]
        assert engine.get_status() == EngineStatus.IDLE

    def test_onboarding_is_pausable(self):
        assert OnboardingWorkflow.create().pausable is True


class TestDeviceAuthorizationWorkflow:
    """Drive device authorization through the engine."""

    def test_full_flow(self, engine, registry, navigator, recorder):
        checked = []

        def check(device_code, confirmation):
            checked.append((device_code, confirmation))
            return {"access_token": "abc"}

        registry.register(
            DeviceAuthorizationWorkflow.create(
                request_device_code=lambda: {"device_code": "DEV", "user_code": "U-42"},
                check_device_code_status=check,
            )
        )
        engine.start("device_authorization")

        assert engine.get_state().current_step_id == "enter_confirmation"
        assert navigator.calls == [("EnterConfirmationCode", {"userCode": "U-42"})]

        engine.complete_step("enter_confirmation", {"confirmation_code": "1234"})

        assert checked == [("DEV", "1234")]
        assert engine.get_status() == EngineStatus.IDLE

    def test_pending_authorization_waits(self, engine, registry):
        registry.register(
            DeviceAuthorizationWorkflow.create(check_device_code_status=lambda device, code: None)
        )
        engine.start("device_authorization")
        engine.complete_step("enter_confirmation")

        state = engine.get_state()
        assert state.current_step_id == "poll_tokens"
        assert state.data.get("tokens") is None
