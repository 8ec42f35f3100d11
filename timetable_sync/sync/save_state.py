import enum
from dataclasses import dataclass


class SaveState(str, enum.Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    SAVING = "saving"
    SAVING_WITH_PENDING_EDIT = "saving_with_pending_edit"


class SaveEvent(str, enum.Enum):
    EDIT = "edit"
    TIMER_FIRES = "timer_fires"
    SAVE_ACKED = "save_acked"
    SAVE_FAILED = "save_failed"


class SaveAction(str, enum.Enum):
    NOTHING = "nothing"
    ARM_TIMER = "arm_timer"
    START_SAVE = "start_save"


@dataclass(frozen=True)
class Transition:
    state: SaveState
    action: SaveAction


# (state, event) -> (next state, what the engine must do)
_TRANSITIONS = {
    (SaveState.IDLE, SaveEvent.EDIT): Transition(SaveState.DEBOUNCING, SaveAction.ARM_TIMER),
    (SaveState.DEBOUNCING, SaveEvent.EDIT): Transition(SaveState.DEBOUNCING, SaveAction.ARM_TIMER),
    (SaveState.DEBOUNCING, SaveEvent.TIMER_FIRES): Transition(SaveState.SAVING, SaveAction.START_SAVE),
    (SaveState.SAVING, SaveEvent.EDIT): Transition(SaveState.SAVING_WITH_PENDING_EDIT, SaveAction.NOTHING),
    (SaveState.SAVING, SaveEvent.SAVE_ACKED): Transition(SaveState.IDLE, SaveAction.NOTHING),
    (SaveState.SAVING, SaveEvent.SAVE_FAILED): Transition(SaveState.IDLE, SaveAction.NOTHING),
    (SaveState.SAVING_WITH_PENDING_EDIT, SaveEvent.EDIT):
        Transition(SaveState.SAVING_WITH_PENDING_EDIT, SaveAction.NOTHING),
    (SaveState.SAVING_WITH_PENDING_EDIT, SaveEvent.SAVE_ACKED):
        Transition(SaveState.DEBOUNCING, SaveAction.ARM_TIMER),
    (SaveState.SAVING_WITH_PENDING_EDIT, SaveEvent.SAVE_FAILED):
        Transition(SaveState.DEBOUNCING, SaveAction.ARM_TIMER),
}


class SaveStateMachine:
    """
    Serializes outbound saves.

    An edit while idle or debouncing (re)arms the debounce timer. An edit
    during a save is remembered, and once that save finishes the timer is
    armed again so exactly one more save runs. Events with no transition
    from the current state (e.g. a stray timer while idle) are ignored.
    """

    def __init__(self):
        self.state = SaveState.IDLE

    def handle(self, event: SaveEvent) -> SaveAction:
        transition = _TRANSITIONS.get((self.state, event))
        if transition is None:
            return SaveAction.NOTHING
        self.state = transition.state
        return transition.action

    @property
    def save_in_flight(self) -> bool:
        return self.state in (SaveState.SAVING, SaveState.SAVING_WITH_PENDING_EDIT)

    @property
    def pending_save(self) -> bool:
        return self.state in (SaveState.DEBOUNCING, SaveState.SAVING_WITH_PENDING_EDIT)

    @property
    def busy(self) -> bool:
        return self.state is not SaveState.IDLE
