from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from leadkit.v1.core.exceptions import AdapterError

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Site adapter - schema, document model and email content for one site
class SiteAdapter(Protocol):
    """Protocol for site adapters."""

    site_slug: str
    template_path: str
    payload_schema: type[BaseModel]

    def build_document_model(self, payload: BaseModel) -> dict[str, Any]:
        """Build the data model handed to the document renderer."""
        ...

    def render_email_html(self, payload: BaseModel, settings: Any) -> str:
        """Render the HTML body of the lead email."""
        ...

    def render_email_text(self, payload: BaseModel, settings: Any) -> str:
        """Render the plain-text body of the lead email."""
        ...


_ADAPTER_METHODS = ("build_document_model", "render_email_html", "render_email_text")


def validate_adapter(adapter: Any) -> SiteAdapter:
    """Check that an adapter provides every capability, once, up front."""
    if adapter is None:
        raise AdapterError("Missing adapter")

    for attr in ("site_slug", "template_path"):
        value = getattr(adapter, attr, None)
        if not isinstance(value, str) or not value.strip():
            raise AdapterError(f"adapter.{attr} required")

    schema = getattr(adapter, "payload_schema", None)
    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise AdapterError("adapter.payload_schema must be a pydantic model class")

    for method in _ADAPTER_METHODS:
        if not callable(getattr(adapter, method, None)):
            raise AdapterError(f"adapter.{method}() required")

    return adapter


class AdapterRegistry(Registry[SiteAdapter]):
    """Registry for site adapters (contact, ...)."""

    def __init__(self):
        super().__init__("Adapter")

    def register(self, name: str, implementation: SiteAdapter) -> None:
        super().register(name, validate_adapter(implementation))


# Global registry instances
adapter_registry = AdapterRegistry()
