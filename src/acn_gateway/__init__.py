"""Host-side gateway for Control Solutions ACN wireless nodes."""

__version__ = "0.1.0"
