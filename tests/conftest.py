import pytest


class FakeTimer:
    """Stand-in for threading.Timer driven by FakeScheduler instead of a thread."""

    def __init__(self, scheduler, interval, function, args=None, kwargs=None):
        self.scheduler = scheduler
        self.interval_ms = round(interval * 1000)
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.due = None
        self.cancelled = False
        self.fired = False

    def start(self):
        self.due = self.scheduler.now + self.interval_ms

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Virtual clock in milliseconds; `advance` fires timers that come due."""

    def __init__(self):
        self.now = 0
        self.timers = []

    def timer(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(self, interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    def active(self):
        return [t for t in self.timers if t.due is not None and not t.cancelled and not t.fired]

    def advance(self, ms):
        target = self.now + ms
        while True:
            due = sorted((t for t in self.active() if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            self.now = timer.due
            timer.fired = True
            timer.function(*timer.args, **timer.kwargs)
        self.now = target


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def people():
    return [{"id": 1, "name": "John"}, {"id": 2, "name": "Joanna"}, {"id": 3, "name": "Mark"}]
