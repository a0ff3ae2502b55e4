from .subscriber_bus import NullSubscriberBus, SocketIOSubscriberBus, SubscriberBus

__all__ = ["NullSubscriberBus", "SocketIOSubscriberBus", "SubscriberBus"]
