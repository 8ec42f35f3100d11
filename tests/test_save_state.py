from timetable_sync.sync.save_state import SaveAction, SaveEvent, SaveState, SaveStateMachine


def test_edit_arms_timer_and_rearms_while_debouncing():
    machine = SaveStateMachine()

    assert machine.handle(SaveEvent.EDIT) is SaveAction.ARM_TIMER
    assert machine.state is SaveState.DEBOUNCING
    assert machine.handle(SaveEvent.EDIT) is SaveAction.ARM_TIMER
    assert machine.state is SaveState.DEBOUNCING
    assert machine.pending_save
    assert not machine.save_in_flight


def test_timer_starts_save_and_ack_returns_to_idle():
    machine = SaveStateMachine()
    machine.handle(SaveEvent.EDIT)

    assert machine.handle(SaveEvent.TIMER_FIRES) is SaveAction.START_SAVE
    assert machine.state is SaveState.SAVING
    assert machine.save_in_flight

    assert machine.handle(SaveEvent.SAVE_ACKED) is SaveAction.NOTHING
    assert machine.state is SaveState.IDLE
    assert not machine.busy


def test_edit_during_save_runs_one_more_save():
    machine = SaveStateMachine()
    machine.handle(SaveEvent.EDIT)
    machine.handle(SaveEvent.TIMER_FIRES)

    assert machine.handle(SaveEvent.EDIT) is SaveAction.NOTHING
    assert machine.handle(SaveEvent.EDIT) is SaveAction.NOTHING
    assert machine.state is SaveState.SAVING_WITH_PENDING_EDIT

    assert machine.handle(SaveEvent.SAVE_ACKED) is SaveAction.ARM_TIMER
    assert machine.state is SaveState.DEBOUNCING


def test_failed_save_with_pending_edit_retries():
    machine = SaveStateMachine()
    machine.handle(SaveEvent.EDIT)
    machine.handle(SaveEvent.TIMER_FIRES)
    machine.handle(SaveEvent.EDIT)

    assert machine.handle(SaveEvent.SAVE_FAILED) is SaveAction.ARM_TIMER
    assert machine.state is SaveState.DEBOUNCING


def test_failed_save_without_edits_goes_idle():
    machine = SaveStateMachine()
    machine.handle(SaveEvent.EDIT)
    machine.handle(SaveEvent.TIMER_FIRES)

    assert machine.handle(SaveEvent.SAVE_FAILED) is SaveAction.NOTHING
    assert machine.state is SaveState.IDLE


def test_stray_events_are_ignored():
    machine = SaveStateMachine()

    assert machine.handle(SaveEvent.TIMER_FIRES) is SaveAction.NOTHING
    assert machine.handle(SaveEvent.SAVE_ACKED) is SaveAction.NOTHING
    assert machine.state is SaveState.IDLE
