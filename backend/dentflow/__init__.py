"""DentFlow core: tenant isolation, BSN vault and audit log."""

__version__ = "1.0.0"
