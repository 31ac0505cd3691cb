from typing import Any

import pytest
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from leadkit.v1.core.exceptions import AdapterError
from leadkit.v1.core.registries import AdapterRegistry, Registry, validate_adapter
from leadkit.v1.leads.contact import ContactFormAdapter, ContactPayload


class MockPayload(BaseModel):
    name: str


class MockAdapter:
    site_slug = "mock"
    template_path = "lead-summary"
    payload_schema = MockPayload

    def build_document_model(self, payload: BaseModel) -> dict[str, Any]:
        return {"title": "Mock"}

    def render_email_html(self, payload: BaseModel, settings: Any) -> str:
        return "<p>Mock</p>"

    def render_email_text(self, payload: BaseModel, settings: Any) -> str:
        return "Mock"


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    assert registry.list() == []

    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]

    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_freeze_blocks_registration():
    """Test that frozen registries reject new implementations."""
    registry = Registry[str]("Test")
    registry.register("impl1", "value1")
    registry.freeze()

    assert registry.is_frozen() is True
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("impl2", "value2")

    assert registry.get("impl1") == "value1"


def test_adapter_registry_accepts_complete_adapter():
    registry = AdapterRegistry()
    adapter = MockAdapter()

    registry.register("mock", adapter)

    assert registry.get("mock") is adapter


def test_adapter_registry_rejects_incomplete_adapter():
    """Missing capabilities fail at registration, not on first use."""

    class NoText(MockAdapter):
        render_email_text = None

    registry = AdapterRegistry()
    with pytest.raises(AdapterError, match="render_email_text"):
        registry.register("broken", NoText())


@pytest.mark.parametrize(
    "attr, value, message",
    [
        ("site_slug", "  ", "site_slug"),
        ("template_path", None, "template_path"),
        ("payload_schema", dict, "payload_schema"),
    ],
)
def test_validate_adapter_checks_attributes(attr, value, message):
    adapter = MockAdapter()
    setattr(adapter, attr, value)

    with pytest.raises(AdapterError, match=message):
        validate_adapter(adapter)


def test_validate_adapter_rejects_none():
    with pytest.raises(AdapterError, match="Missing adapter"):
        validate_adapter(None)


def test_builtin_contact_adapter_registered():
    from leadkit.v1.core.registries import adapter_registry
    from leadkit.v1.leads import registry_init  # noqa: F401

    assert "contact" in adapter_registry.list()
    assert isinstance(adapter_registry.get("contact"), ContactFormAdapter)


@pytest.mark.parametrize("email", ["jo@", "jo@example", "jo example@example.com", "@example.com"])
def test_contact_payload_rejects_malformed_email(email):
    with pytest.raises(PydanticValidationError) as exc_info:
        ContactPayload.model_validate({"name": "Jo", "email": email})

    assert exc_info.value.errors()[0]["loc"] == ("email",)


def test_contact_payload_accepts_trimmed_email():
    payload = ContactPayload.model_validate({"name": "Jo", "email": "  jo@example.com "})

    assert payload.email == "jo@example.com"
    assert payload.model_dump(mode="json")["email"] == "jo@example.com"
