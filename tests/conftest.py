import pytest

from fakes import FakeNotifier, FakeRegistry, FakeTool


@pytest.fixture
def tool():
    return FakeTool()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def registry():
    return FakeRegistry(everything=True)
