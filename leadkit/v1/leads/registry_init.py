"""
Registry initialization for the leads module.
Registers the built-in site adapters.
"""

from leadkit.v1.core.registries import adapter_registry
from leadkit.v1.leads.contact import ContactFormAdapter


def init_lead_registries():
    """Initialize lead-related registries."""
    if "contact" not in adapter_registry.list():
        adapter_registry.register("contact", ContactFormAdapter())


init_lead_registries()
