from test.cfn_container_image_provider.base import MockLambdaContext

import pytest

from cfn_container_image_provider.common.deadline import Deadline
from cfn_container_image_provider.exceptions import Cancelled


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test__Deadline__without_limit_never_expires():
    deadline = Deadline()
    assert deadline.remaining is None
    assert not deadline.expired
    assert deadline.timeout(30) == 30
    deadline.check()


def test__Deadline__timeout_is_capped_by_remaining_time():
    clock = FakeClock()
    deadline = Deadline(seconds=10, clock=clock)

    assert deadline.timeout(60) == 10
    clock.now += 7
    assert deadline.timeout(60) == pytest.approx(3)
    assert deadline.timeout(1) == 1


def test__Deadline__expires():
    clock = FakeClock()
    deadline = Deadline(seconds=5, clock=clock)
    clock.now += 5

    assert deadline.expired
    with pytest.raises(Cancelled) as e:
        deadline.timeout(60, "GET manifest")
    assert str(e.value) == "GET manifest cancelled, invocation deadline exceeded"


def test__Deadline__cancel():
    deadline = Deadline(seconds=60)
    deadline.cancel()

    assert deadline.expired
    with pytest.raises(Cancelled):
        deadline.check("upload")


def test__Deadline__from_context_keeps_margin():
    deadline = Deadline.from_context(MockLambdaContext("fn", remaining_time_in_millis=60_000), 15)
    assert deadline.remaining == pytest.approx(45, abs=1)

    assert Deadline.from_context(MockLambdaContext("fn", remaining_time_in_millis=10_000), 15).expired
