"""Lead Kit: form intake, background document rendering and delivery."""

__version__ = "1.0.0"
