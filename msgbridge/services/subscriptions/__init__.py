from msgbridge.services.subscriptions.subscription_service import Subscription, SubscriptionManager

__all__ = ["Subscription", "SubscriptionManager"]
