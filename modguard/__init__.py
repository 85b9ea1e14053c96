"""modguard: content risk scoring and an audited moderation pipeline."""

__version__ = "0.1.0"
