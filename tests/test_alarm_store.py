import pytest

from alarms.errors import NotFoundError, ValidationError
from alarms.store import AlarmStore


def test_create_then_list_contains_new_alarm(store, persistence):
    alarm = store.create("Wake up", "07:30", 45)

    alarms = store.list()
    assert alarms == [alarm]
    assert (alarm.label, alarm.time, alarm.duration) == ("Wake up", "07:30", 45)
    assert alarm.triggered is False
    assert alarm.sound_clip is None
    assert persistence.saves == 1
    assert persistence.records[0]["id"] == alarm.id


@pytest.mark.parametrize("time", ["", "   ", None])
def test_create_without_time_is_rejected(store, persistence, time):
    with pytest.raises(ValidationError):
        store.create("Nap", time)
    assert store.list() == []
    assert persistence.saves == 0


def test_create_with_malformed_time_is_rejected(store, persistence):
    with pytest.raises(ValidationError):
        store.create("Nap", "25:00")
    assert len(store) == 0
    assert persistence.saves == 0


@pytest.mark.parametrize(
    "duration, expected",
    [
        (None, 30), (0, 30), (-5, 30), ("abc", 30), (True, 30), ("45", 45), (12, 12),
        (12.0, 12), (2.7, 30), ("2.7", 30),
    ],
)
def test_duration_defaults_when_not_positive_integer(store, duration, expected):
    assert store.create("Alarm", "06:00", duration).duration == expected


def test_blank_label_gets_default(store):
    assert store.create("   ", "06:00").label == "Alarm"
    assert store.create(None, "06:05").label == "Alarm"


def test_list_keeps_insertion_order(store):
    late = store.create("late", "23:00")
    early = store.create("early", "05:00")

    assert [a.id for a in store.list()] == [late.id, early.id]


def test_ids_are_unique(store):
    ids = {store.create("x", "06:00").id for _ in range(200)}
    assert len(ids) == 200


def test_update_label_persists(store, persistence):
    alarm = store.create("Old", "06:00")

    updated = store.update(alarm.id, label="  New  ")

    assert updated is alarm
    assert alarm.label == "New"
    assert persistence.records[0]["label"] == "New"
    assert persistence.saves == 2


def test_update_missing_alarm_raises(store):
    with pytest.raises(NotFoundError):
        store.update("al_missing", label="x")


def test_update_rejects_unknown_fields_and_bad_time(store):
    alarm = store.create("a", "06:00")

    with pytest.raises(ValidationError):
        store.update(alarm.id, triggered=True)
    with pytest.raises(ValidationError):
        store.update(alarm.id, time="6pm")
    assert alarm.time == "06:00"


def test_delete_is_idempotent(store, persistence):
    alarm = store.create("a", "06:00")

    assert store.delete(alarm.id) is alarm
    saves = persistence.saves
    assert store.delete(alarm.id) is None
    assert persistence.saves == saves
    assert store.get(alarm.id) is None


def test_failed_save_keeps_in_memory_change(store, persistence):
    persistence.fail = True

    alarm = store.create("offline", "06:00")

    assert store.get(alarm.id) is alarm
    assert store.last_save_error is not None

    persistence.fail = False
    store.update(alarm.id, label="back online")
    assert store.last_save_error is None
    assert persistence.records[0]["label"] == "back online"


def test_load_resets_triggered(persistence):
    persistence.records = [
        {"id": "al_1", "label": "a", "time": "07:00", "duration": 30, "triggered": True, "sound_clip": None}
    ]
    store = AlarmStore(persistence)

    alarms = store.load()

    assert [a.id for a in alarms] == ["al_1"]
    assert alarms[0].triggered is False
