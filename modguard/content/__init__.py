from modguard.content.store import ContentStore

__all__ = ["ContentStore"]
