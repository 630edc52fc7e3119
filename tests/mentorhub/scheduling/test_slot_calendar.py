from datetime import datetime, time, timedelta

import pytest

from conftest import MENTEE_A, MENTOR_ID, NEXT_MONDAY, NOW
from mentorhub.scheduling.errors import InvalidTimeGranularity
from mentorhub.scheduling.policy import SchedulingPolicy
from mentorhub.scheduling.slot_calendar import SlotCalendar, format_slot_time, normalize_weekday


@pytest.fixture
def calendar(arbiter) -> SlotCalendar:
    return arbiter.calendar


def test_set_availability_replaces_weekday(calendar: SlotCalendar) -> None:
    assert calendar.set_availability(MENTOR_ID, 'Monday', [time(10, 0), time(9, 0)]) == []

    removed = calendar.set_availability(MENTOR_ID, 'monday', [time(9, 0), time(14, 30)])

    assert removed == [time(10, 0)]
    template = calendar.get_availability(MENTOR_ID)
    assert template['monday'] == [time(9, 0), time(14, 30)]
    assert template['tuesday'] == []
    assert list(template) == ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


@pytest.mark.parametrize(
    ('slot_time', 'message'),
    [
        (time(9, 15), '9:15 AM is not on a 30-minute boundary.'),
        (time(8, 30), 'Availability must start between 9:00 AM and 5:30 PM.'),
        (time(18, 0), 'Availability must start between 9:00 AM and 5:30 PM.'),
        (time(9, 0, 30), '9:00:30 AM is not on a 30-minute boundary.'),
    ],
)
def test_set_availability_rejects_invalid_times(calendar: SlotCalendar, slot_time: time, message: str) -> None:
    calendar.set_availability(MENTOR_ID, 'monday', [time(9, 0)])

    with pytest.raises(InvalidTimeGranularity) as exception_info:
        calendar.set_availability(MENTOR_ID, 'monday', [time(10, 0), slot_time])

    assert exception_info.value.message == message
    assert calendar.get_availability(MENTOR_ID)['monday'] == [time(9, 0)]


def test_set_availability_rejects_unknown_weekday(calendar: SlotCalendar) -> None:
    with pytest.raises(ValueError):
        calendar.set_availability(MENTOR_ID, 'funday', [time(9, 0)])


def test_copy_availability_from_previous_day(calendar: SlotCalendar) -> None:
    calendar.set_availability(MENTOR_ID, 'monday', [time(10, 0), time(10, 30)])
    calendar.set_availability(MENTOR_ID, 'tuesday', [time(15, 0)])

    removed = calendar.copy_availability(MENTOR_ID, 'monday', 'tuesday')

    assert removed == [time(15, 0)]
    assert calendar.get_availability(MENTOR_ID)['tuesday'] == [time(10, 0), time(10, 30)]


def test_is_available_matches_template(calendar: SlotCalendar) -> None:
    calendar.set_availability(MENTOR_ID, 4, [time(16, 0)])

    assert calendar.is_available(MENTOR_ID, 'friday', time(16, 0)) is True
    assert calendar.is_available(MENTOR_ID, 'friday', time(16, 30)) is False
    assert calendar.is_available(MENTOR_ID + 1, 'friday', time(16, 0)) is False


def test_list_available_orders_by_date_then_time(calendar: SlotCalendar) -> None:
    calendar.set_availability(MENTOR_ID, 'monday', [time(9, 30), time(9, 0)])
    calendar.set_availability(MENTOR_ID, 'tuesday', [time(11, 0)])

    cells = list(calendar.list_available(MENTOR_ID, NEXT_MONDAY, NEXT_MONDAY + timedelta(days=1)))

    assert cells == [
        (NEXT_MONDAY, time(9, 0)),
        (NEXT_MONDAY, time(9, 30)),
        (NEXT_MONDAY + timedelta(days=1), time(11, 0)),
    ]


def test_list_available_skips_times_already_started(calendar: SlotCalendar) -> None:
    today = NOW.date()
    calendar.set_availability(MENTOR_ID, normalize_weekday(today.weekday()), [time(9, 30), time(10, 0), time(10, 30)])

    assert list(calendar.list_available(MENTOR_ID, today, today)) == [(today, time(10, 30))]


def test_list_available_excludes_active_and_restores_released(arbiter, calendar: SlotCalendar) -> None:
    calendar.set_availability(MENTOR_ID, 'monday', [time(9, 0), time(9, 30)])
    open_cells = calendar.list_available(MENTOR_ID, NEXT_MONDAY, NEXT_MONDAY)

    request_id = arbiter.request_session(MENTOR_ID, MENTEE_A, NEXT_MONDAY, time(9, 0), 30, 'career')
    assert list(open_cells) == [(NEXT_MONDAY, time(9, 30))]

    arbiter.approve(request_id, MENTOR_ID)
    assert list(open_cells) == [(NEXT_MONDAY, time(9, 30))]

    arbiter.cancel(request_id, MENTEE_A)
    assert list(open_cells) == [(NEXT_MONDAY, time(9, 0)), (NEXT_MONDAY, time(9, 30))]


def test_list_available_is_lazy_and_restartable(calendar: SlotCalendar, monkeypatch) -> None:
    calendar.set_availability(MENTOR_ID, 'monday', [time(9, 0)])
    loads = []
    original = calendar.get_availability

    def counting_get_availability(mentor_id):
        loads.append(mentor_id)
        return original(mentor_id)

    monkeypatch.setattr(calendar, 'get_availability', counting_get_availability)

    open_cells = calendar.list_available(MENTOR_ID, NEXT_MONDAY, NEXT_MONDAY + timedelta(days=6))
    assert loads == []

    assert list(open_cells) == [(NEXT_MONDAY, time(9, 0))]
    assert list(open_cells) == [(NEXT_MONDAY, time(9, 0))]
    assert loads == [MENTOR_ID, MENTOR_ID]


def test_list_available_with_inverted_range_is_empty(calendar: SlotCalendar) -> None:
    calendar.set_availability(MENTOR_ID, 'monday', [time(9, 0)])

    assert list(calendar.list_available(MENTOR_ID, NEXT_MONDAY, NEXT_MONDAY - timedelta(days=1))) == []


@pytest.mark.parametrize(
    ('slot_time', 'label'),
    [
        (time(9, 0), '9:00 AM'),
        (time(12, 30), '12:30 PM'),
        (time(17, 30), '5:30 PM'),
        (time(0, 0), '12:00 AM'),
        (time(9, 0, 30), '9:00:30 AM'),
    ],
)
def test_format_slot_time(slot_time: time, label: str) -> None:
    assert format_slot_time(slot_time) == label


def test_default_grid_matches_mentor_picker() -> None:
    grid = SchedulingPolicy().slot_grid()

    assert len(grid) == 18
    assert grid[0] == time(9, 0)
    assert grid[-1] == time(17, 30)


def test_grid_rounds_open_time_up_to_boundary() -> None:
    policy = SchedulingPolicy(slot_granularity_minutes=15, day_open_time=time(9, 5), last_start_time=time(10, 0))

    assert policy.slot_grid() == [time(9, 15), time(9, 30), time(9, 45), time(10, 0)]


def test_cancellation_deadline_uses_cutoff() -> None:
    policy = SchedulingPolicy(cancellation_cutoff=timedelta(hours=12))

    assert policy.cancellation_deadline(datetime(2026, 1, 8, 10, 0)) == datetime(2026, 1, 7, 22, 0)


def test_policy_reads_config(monkeypatch) -> None:
    monkeypatch.setattr('mentorhub.core.config.CANCELLATION_CUTOFF_HOURS', 48)
    monkeypatch.setattr('mentorhub.core.config.BOOKING_HORIZON_DAYS', 14)

    policy = SchedulingPolicy.from_config()

    assert policy.cancellation_cutoff == timedelta(hours=48)
    assert policy.booking_horizon_days == 14
    assert isinstance(policy.day_open_time, time)
