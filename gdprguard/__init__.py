"""GDPR Guard: personal-data scanning for object-store file trees."""

__version__ = "1.0.0"
