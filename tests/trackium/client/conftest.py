import pytest
from trackium.client.tasks.collection import SubscriptionHandle


class FakeLocationProvider:
    """Hands fixes to the subscriber on demand instead of reading hardware."""

    def __init__(self):
        self.subscriptions = []
        self.unsubscribed = []

    def subscribe(self, min_interval_ms, target_interval_ms, callback):
        handle = SubscriptionHandle(min_interval_ms, target_interval_ms, callback)
        self.subscriptions.append(handle)
        return handle

    def unsubscribe(self, handle):
        handle.stop_event.set()
        self.unsubscribed.append(handle)

    @property
    def handle(self):
        return self.subscriptions[-1]

    def deliver(self, sample, handle=None):
        # Deliberately ignores whether the subscription is still active
        (handle or self.handle).callback(sample)


class FakePermission:
    def __init__(self, granted=True):
        self.granted = granted

    def is_location_permission_granted(self):
        return self.granted


@pytest.fixture
def provider():
    return FakeLocationProvider()


@pytest.fixture
def permission():
    return FakePermission()
