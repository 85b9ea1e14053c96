from modguard.events.bus import Event, EventBus, EventName
from modguard.events.subscribers import register_default_subscribers

__all__ = ["Event", "EventBus", "EventName", "register_default_subscribers"]
