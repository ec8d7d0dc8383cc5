"""
Selection and filter state for the cohort dashboard.

The state is an immutable, versioned value. Every change goes through
``reduce(state, action)``; ``DashboardStore`` holds the current value and
notifies subscribers once per new version, so render code reacts to state
instead of mutating it from event handlers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional, Union

from dashboard_config import DEFAULT_CONFIG
from dashboard_logging import get_logger

logger = get_logger(__name__)


class Gender(Enum):
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "Gender":
        text = str(value).strip().lower() if value is not None else ""
        if text in ("male", "m"):
            return cls.MALE
        if text in ("female", "f"):
            return cls.FEMALE
        return cls.UNKNOWN


class Opacity(Enum):
    FULL = "full"
    DIMMED = "dimmed"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class SelectionState:
    """
    Which patients are selected and which gender categories are shown.

    An empty ``selected`` set lets every series pass: selecting nobody looks
    the same as selecting everybody.
    """
    selected: frozenset = field(default_factory=frozenset)
    male_enabled: bool = True
    female_enabled: bool = True
    hovered_id: Optional[str] = None
    version: int = 0


# --- Actions ---
@dataclass(frozen=True)
class ToggleSelect:
    patient_id: str


@dataclass(frozen=True)
class SetGenderEnabled:
    gender: Gender
    enabled: bool


@dataclass(frozen=True)
class Hover:
    patient_id: Optional[str]


@dataclass(frozen=True)
class Reset:
    pass


Action = Union[ToggleSelect, SetGenderEnabled, Hover, Reset]


def reduce(state: SelectionState, action: Action) -> SelectionState:
    """
    Apply one action and return the next state.

    The version is bumped only when something changed; a no-op action
    returns ``state`` itself.
    """
    if isinstance(action, ToggleSelect):
        selected = state.selected ^ {action.patient_id}
        nxt = replace(state, selected=frozenset(selected))
    elif isinstance(action, SetGenderEnabled):
        if action.gender is Gender.MALE:
            nxt = replace(state, male_enabled=bool(action.enabled))
        elif action.gender is Gender.FEMALE:
            nxt = replace(state, female_enabled=bool(action.enabled))
        else:
            raise ValueError("UNKNOWN gender cannot be filtered")
    elif isinstance(action, Hover):
        nxt = replace(state, hovered_id=action.patient_id)
    elif isinstance(action, Reset):
        nxt = SelectionState(version=state.version)
    else:
        raise TypeError(f"Unknown action: {action!r}")

    if replace(nxt, version=state.version) == state:
        return state
    return replace(nxt, version=state.version + 1)


# --- Derived predicates ---
def gender_passes(state: SelectionState, series) -> bool:
    if series.gender is Gender.MALE:
        return state.male_enabled
    if series.gender is Gender.FEMALE:
        return state.female_enabled
    return True


def is_selected_or_unfiltered(state: SelectionState, series) -> bool:
    return not state.selected or series.id in state.selected


def is_visible(state: SelectionState, series) -> bool:
    return gender_passes(state, series) and is_selected_or_unfiltered(state, series)


def visibility_predicate(state: SelectionState) -> Callable[[object], bool]:
    return lambda series: is_visible(state, series)


def opacity_class(state: SelectionState, series, hovered_id: Optional[str] = None) -> Opacity:
    """
    Graded opacity of a series.

    Gender-filtered series are HIDDEN (and take no pointer interaction). With a
    hover active, the hovered series is FULL and the others DIMMED. Without one,
    selected-or-unfiltered series are FULL and the rest DIMMED.
    """
    if not gender_passes(state, series):
        return Opacity.HIDDEN
    if hovered_id is not None:
        return Opacity.FULL if series.id == hovered_id else Opacity.DIMMED
    return Opacity.FULL if is_selected_or_unfiltered(state, series) else Opacity.DIMMED


@dataclass(frozen=True)
class SeriesStyle:
    series_id: str
    opacity: Opacity
    alpha: float
    linewidth: float
    color: str

    @property
    def interactive(self) -> bool:
        return self.opacity is not Opacity.HIDDEN


def series_style(state: SelectionState, series, config=DEFAULT_CONFIG) -> SeriesStyle:
    cls = opacity_class(state, series, state.hovered_id)
    if cls is Opacity.HIDDEN:
        alpha = 0.0
    elif cls is Opacity.FULL:
        alpha = config.full_alpha
    elif not is_selected_or_unfiltered(state, series):
        # Unselected while a selection exists: fainter than hover dimming
        alpha = config.faded_alpha
    else:
        alpha = config.dimmed_alpha

    hovered = state.hovered_id is not None and series.id == state.hovered_id
    return SeriesStyle(series_id=series.id,
                       opacity=cls,
                       alpha=alpha,
                       linewidth=config.hover_line_width if hovered else config.line_width,
                       color=config.line_color)


def sole_selection(state: SelectionState) -> Optional[str]:
    if len(state.selected) == 1:
        return next(iter(state.selected))
    return None


class DashboardStore:
    """Holds the current ``SelectionState`` and fans out new versions to subscribers."""

    def __init__(self, state: Optional[SelectionState] = None):
        self._state = state or SelectionState()
        self._subscribers: list[Callable[[SelectionState, SelectionState], None]] = []

    @property
    def state(self) -> SelectionState:
        return self._state

    def subscribe(self, callback: Callable[[SelectionState, SelectionState], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def dispatch(self, action: Action) -> SelectionState:
        prev = self._state
        nxt = reduce(prev, action)
        if nxt is prev:
            return prev
        self._state = nxt
        logger.debug("state v%d after %r", nxt.version, action)
        for callback in list(self._subscribers):
            callback(prev, nxt)
        return nxt
