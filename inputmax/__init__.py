"""InputMax: bilingual audio lessons generated through a credit-metered edge service."""

__version__ = "0.1.0"
