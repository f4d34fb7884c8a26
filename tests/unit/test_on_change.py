"""Unit tests for per-attribute on-change callbacks."""

import pytest

from obsentity import CallbackError, Entity, ObservableEntity


@pytest.mark.unit
def test_setitem_invokes_subscribed_callback(empty_observable):
    """Setting a tracked attribute through the indexer runs its callback"""
    invoked = False

    def callback():
        nonlocal invoked
        invoked = True

    empty_observable.add_on_change("testAttribute", callback)
    empty_observable["testAttribute"] = "newValue"

    assert invoked


@pytest.mark.unit
def test_set_value_invokes_callback_and_chains(empty_observable):
    call_count = 0

    def callback():
        nonlocal call_count
        call_count += 1

    empty_observable.add_on_change("testAttribute", callback)
    result = empty_observable.set_value("testAttribute", "newValue")

    assert result is empty_observable
    assert call_count == 1
    assert empty_observable.record.get("testAttribute") == "newValue"


@pytest.mark.unit
def test_untracked_write_runs_no_callbacks(empty_observable):
    """Writes to keys nobody subscribed to land without notifying"""
    calls = []
    empty_observable.add_on_change("tracked", lambda: calls.append("tracked"))

    empty_observable["other"] = 1

    assert calls == []
    assert empty_observable["other"] == 1


@pytest.mark.unit
def test_callback_sees_the_written_value(empty_observable):
    """Callbacks run after the record already holds the new value"""
    seen = []
    empty_observable.add_on_change("name", lambda: seen.append(empty_observable["name"]))

    empty_observable["name"] = "first"
    empty_observable["name"] = "second"

    assert seen == ["first", "second"]


@pytest.mark.unit
def test_callbacks_run_in_registration_order(empty_observable):
    calls = []

    empty_observable.add_on_change("name", lambda: calls.append(1), lambda: calls.append(2))
    empty_observable["name"] = "x"

    assert calls == [1, 2]


@pytest.mark.unit
def test_add_on_change_appends_to_existing_callbacks(empty_observable):
    """Subscribing the same key again adds to the list instead of replacing it"""
    calls = []

    empty_observable.add_on_change("name", lambda: calls.append("a"))
    empty_observable.add_on_change("name", lambda: calls.append("b"))
    empty_observable["name"] = "x"

    assert calls == ["a", "b"]


@pytest.mark.unit
def test_tracked_keys_are_case_insensitive(empty_observable):
    calls = []

    empty_observable.add_on_change("Name", lambda: calls.append("Name"))
    empty_observable["NAME"] = "x"

    assert calls == ["Name"]
    assert empty_observable.is_tracked("name")
    assert empty_observable.tracked_keys == ["Name"]
    # the record itself still compares keys exactly
    assert empty_observable.record.keys() == ["NAME"]


@pytest.mark.unit
def test_remove_on_change_removes_every_callback(empty_observable):
    """After remove_on_change, writes to the key invoke nothing"""
    invoked = False

    def callback():
        nonlocal invoked
        invoked = True

    empty_observable.add_on_change("testAttribute", callback, callback)
    assert empty_observable.remove_on_change("testAttribute") is True
    empty_observable["testAttribute"] = "newValue"

    assert not invoked
    assert not empty_observable.is_tracked("testAttribute")
    assert empty_observable.remove_on_change("testAttribute") is False


@pytest.mark.unit
def test_missing_key_or_callbacks_is_silently_ignored(empty_observable):
    empty_observable.add_on_change(None, lambda: None)
    empty_observable.add_on_change("name")
    empty_observable.add_on_change("name", None)

    assert empty_observable.tracked_keys == []


@pytest.mark.unit
def test_strict_mode_rejects_missing_key_or_callbacks():
    observable = ObservableEntity(strict=True)

    with pytest.raises(ValueError):
        observable.add_on_change(None, lambda: None)
    with pytest.raises(ValueError):
        observable.add_on_change("name")
    with pytest.raises(ValueError):
        observable.add_on_change("name", lambda: None, None)
    assert observable.tracked_keys == []


@pytest.mark.unit
def test_non_callable_callback_is_rejected(empty_observable):
    with pytest.raises(TypeError):
        empty_observable.add_on_change("name", "not callable")


@pytest.mark.unit
def test_invoke_on_change_fires_without_writing(empty_observable):
    invoked = False

    def callback():
        nonlocal invoked
        invoked = True

    empty_observable.add_on_change("testAttribute", callback)

    assert empty_observable.invoke_on_change("testAttribute") is True
    assert invoked
    assert "testAttribute" not in empty_observable
    assert empty_observable.invoke_on_change("other") is False


@pytest.mark.unit
def test_invoke_all_on_change_skips_keys_missing_from_record(empty_observable):
    """Only tracked keys present on the record are re-fired"""
    invoked1 = False
    invoked2 = False

    def callback1():
        nonlocal invoked1
        invoked1 = True

    def callback2():
        nonlocal invoked2
        invoked2 = True

    empty_observable.add_on_change("testAttribute1", callback1)
    empty_observable.add_on_change("testAttribute2", callback2)
    empty_observable.invoke_all_on_change()

    assert not invoked1
    assert not invoked2


@pytest.mark.unit
def test_invoke_all_on_change_fires_present_tracked_keys(observable):
    calls = []

    observable.add_on_change("name", lambda: calls.append("name"))
    observable.add_on_change("int2", lambda: calls.append("int2"))
    observable.add_on_change("missing", lambda: calls.append("missing"))
    observable.invoke_all_on_change()

    # record order: name, int1, int2
    assert calls == ["name", "int2"]


@pytest.mark.unit
def test_delete_notifies_tracked_key(observable):
    calls = []
    observable.add_on_change("name", lambda: calls.append("name" in observable))

    del observable["name"]

    assert calls == [False]
    with pytest.raises(KeyError):
        del observable["name"]


@pytest.mark.unit
def test_failing_callback_does_not_block_others_and_is_reported(empty_observable):
    """All callbacks run; the failure is raised afterwards as CallbackError"""
    calls = []

    def broken():
        raise RuntimeError("boom")

    empty_observable.add_on_change("name", broken, lambda: calls.append("after"))

    with pytest.raises(CallbackError) as excinfo:
        empty_observable["name"] = "x"

    assert calls == ["after"]
    assert excinfo.value.key == "name"
    assert empty_observable["name"] == "x"


@pytest.mark.unit
def test_fail_fast_mode_stops_at_first_failure():
    observable = ObservableEntity(isolate_errors=False)
    calls = []

    def broken():
        raise RuntimeError("boom")

    observable.add_on_change("name", broken, lambda: calls.append("after"))

    with pytest.raises(RuntimeError):
        observable["name"] = "x"
    assert calls == []


@pytest.mark.unit
def test_invoke_all_aggregates_failures_across_keys(observable):
    calls = []

    def broken():
        raise RuntimeError("boom")

    observable.add_on_change("name", broken)
    observable.add_on_change("int1", broken)
    observable.add_on_change("int2", lambda: calls.append("int2"))

    with pytest.raises(CallbackError) as excinfo:
        observable.invoke_all_on_change()

    assert len(excinfo.value.errors) == 2
    assert calls == ["int2"]


@pytest.mark.unit
def test_callback_can_write_back_into_the_entity():
    """A callback may update other attributes of the same entity"""
    account = ObservableEntity.from_record(
        Entity("account", attributes={"name": "Test", "int1": 10, "int2": 20})
    )

    def recompute():
        account["int3"] = account.get("int1", int, 0) * account.get("int2", int, 0)

    account.add_on_change("name", recompute)
    assert account["int3"] is None

    account.set_value("name", "TestUpdate")

    assert account["int3"] == 200


@pytest.mark.unit
def test_callback_removing_its_key_does_not_cancel_the_current_write(empty_observable):
    """Every callback captured for a write runs, even if an earlier one unsubscribes"""
    calls = []

    def first():
        calls.append("first")
        empty_observable.remove_on_change("k")

    empty_observable.add_on_change("k", first, lambda: calls.append("second"))

    empty_observable["k"] = 1
    empty_observable["k"] = 2

    assert calls == ["first", "second"]
    assert not empty_observable.is_tracked("k")
