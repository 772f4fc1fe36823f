from __future__ import annotations

"""Selection wizard as a pure state machine.

Every user action or background result is a :class:`WizardEvent`; the whole
flow is the single transition function :func:`reduce`.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from tangleplay.backend.gateway.models import MediaCandidate, TorrentInfo
from tangleplay.backend.player.subtitles.models import SubtitleCandidate, build_subtitle_candidates

LOOKUP_FAILED_NOTICE = "Could not get info for this magnet link."


class WizardStep(str, Enum):
    WELCOME = "welcome"
    MEDIA_SELECTION = "media_selection"
    READY = "ready"


class WizardEventType(str, Enum):
    IDENTIFIER_CHANGED = "identifier_changed"
    SUBMIT = "submit"
    LOOKUP_SUCCEEDED = "lookup_succeeded"
    LOOKUP_FAILED = "lookup_failed"
    DISMISS_NOTICE = "dismiss_notice"
    MEDIA_SELECTED = "media_selected"
    RIGHTS_TOGGLED = "rights_toggled"
    NEXT = "next"
    PREVIOUS = "previous"
    PLAY = "play"
    SESSION_ENDED = "session_ended"


@dataclass(frozen=True)
class WizardEvent:
    type: WizardEventType
    value: Any = None
    identifier: Optional[str] = None


@dataclass(frozen=True)
class SelectionState:
    step: WizardStep = WizardStep.WELCOME
    identifier: str = ""
    selected_path: str = ""
    candidates: tuple[MediaCandidate, ...] = ()
    subtitle_candidates: tuple[SubtitleCandidate, ...] = ()
    title: str = ""
    description: str = ""
    rights_confirmed: bool = False
    busy: bool = False
    notice: Optional[str] = None
    launching: bool = False

    @property
    def entry_enabled(self) -> bool:
        return not self.busy

    @property
    def can_submit(self) -> bool:
        return self.step is WizardStep.WELCOME and bool(self.identifier.strip()) and not self.busy

    @property
    def can_advance(self) -> bool:
        return self.step is WizardStep.MEDIA_SELECTION and bool(self.selected_path) and self.rights_confirmed

    @property
    def can_play(self) -> bool:
        return self.step is WizardStep.READY and bool(self.selected_path) and self.rights_confirmed

    @property
    def selected(self) -> Optional[MediaCandidate]:
        for candidate in self.candidates:
            if candidate.display_path == self.selected_path:
                return candidate
        return None


def reduce(state: SelectionState, event: WizardEvent) -> SelectionState:
    kind = event.type

    if kind is WizardEventType.IDENTIFIER_CHANGED:
        if state.busy:
            return state
        return replace(state, identifier=str(event.value or ""), selected_path="", rights_confirmed=False)

    if kind is WizardEventType.SUBMIT or (kind is WizardEventType.NEXT and state.step is WizardStep.WELCOME):
        if not state.can_submit:
            return state
        return replace(state, busy=True, notice=None)

    if kind is WizardEventType.LOOKUP_SUCCEEDED:
        if not state.busy or event.identifier != state.identifier:
            return state
        info: TorrentInfo = event.value
        return replace(
            state,
            step=WizardStep.MEDIA_SELECTION,
            busy=False,
            notice=None,
            title=info.name,
            description=info.readme,
            candidates=tuple(info.candidates()),
            subtitle_candidates=(),
            selected_path="",
            rights_confirmed=False,
        )

    if kind is WizardEventType.LOOKUP_FAILED:
        if not state.busy or event.identifier != state.identifier:
            return state
        return replace(state, step=WizardStep.WELCOME, busy=False, notice=LOOKUP_FAILED_NOTICE)

    if kind is WizardEventType.DISMISS_NOTICE:
        return replace(state, notice=None)

    if kind is WizardEventType.MEDIA_SELECTED:
        path = str(event.value or "")
        if state.step is not WizardStep.MEDIA_SELECTION:
            return state
        if not any(c.display_path == path for c in state.candidates):
            return state
        if path == state.selected_path:
            return state
        return replace(state, selected_path=path, rights_confirmed=False)

    if kind is WizardEventType.RIGHTS_TOGGLED:
        if state.step is WizardStep.WELCOME:
            return state
        return replace(state, rights_confirmed=bool(event.value))

    if kind is WizardEventType.NEXT:
        if not state.can_advance:
            return state
        return replace(state, step=WizardStep.READY)

    if kind is WizardEventType.PREVIOUS:
        if state.step is WizardStep.READY:
            return replace(state, step=WizardStep.MEDIA_SELECTION, launching=False)
        if state.step is WizardStep.MEDIA_SELECTION:
            return replace(
                state,
                step=WizardStep.WELCOME,
                candidates=(),
                subtitle_candidates=(),
                selected_path="",
                rights_confirmed=False,
                title="",
                description="",
            )
        return state

    if kind is WizardEventType.PLAY:
        if not state.can_play or state.launching:
            return state
        subtitles = build_subtitle_candidates(state.candidates, state.selected_path)
        return replace(state, subtitle_candidates=tuple(subtitles), launching=True)

    if kind is WizardEventType.SESSION_ENDED:
        return replace(state, launching=False)

    return state
