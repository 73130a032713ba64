"""
Unit tests for MessageIdGenerator
"""
import datetime

from motion_blinds_bridge import MessageIdGenerator


class FakeClock:
    def __init__(self, *instants: datetime.datetime):
        self.instants = list(instants)

    def __call__(self) -> datetime.datetime:
        if len(self.instants) > 1:
            return self.instants.pop(0)
        return self.instants[0]


class TestMessageIdGenerator:
    """Test message ID generation"""

    def test_format(self):
        clock = FakeClock(datetime.datetime(2020, 3, 21, 13, 42, 9, 916000))
        assert MessageIdGenerator(clock).next() == "20200321134209916"

    def test_stalled_clock_still_increases(self):
        clock = FakeClock(datetime.datetime(2020, 3, 21, 13, 42, 9, 916000))
        generator = MessageIdGenerator(clock)

        ids = [generator.next() for _ in range(5)]

        assert ids == [
            "20200321134209916",
            "20200321134209917",
            "20200321134209918",
            "20200321134209919",
            "20200321134209920",
        ]

    def test_clock_moving_backwards(self):
        clock = FakeClock(
            datetime.datetime(2020, 3, 21, 13, 42, 9, 916000),
            datetime.datetime(2020, 3, 21, 13, 40, 0, 0),
            datetime.datetime(2020, 3, 21, 13, 42, 10, 0),
        )
        generator = MessageIdGenerator(clock)

        ids = [int(generator.next()) for _ in range(3)]

        assert ids == [20200321134209916, 20200321134209917, 20200321134210000]

    def test_real_clock_is_strictly_increasing(self):
        generator = MessageIdGenerator()
        ids = [int(generator.next()) for _ in range(1000)]
        assert all(a < b for a, b in zip(ids, ids[1:]))

    def test_generators_are_independent(self):
        clock = FakeClock(datetime.datetime(2021, 1, 1, 0, 0, 0, 0))
        a = MessageIdGenerator(clock)
        b = MessageIdGenerator(clock)
        assert a.next() == b.next() == "20210101000000000"
