"""Drives the wizard reducer and runs the metadata lookup in the background."""

from __future__ import annotations

from concurrent.futures import Future
from typing import Optional, Protocol

from tangleplay.backend.common.dispatch import UpdateQueue
from tangleplay.backend.common.errors import GatewayError, WizardError
from tangleplay.backend.common.logging import get_logger
from tangleplay.backend.common.tasks import TaskRunner, TaskSpec
from tangleplay.backend.gateway.models import TorrentInfo
from tangleplay.backend.player.session import PlayRequest
from tangleplay.backend.wizard.state import (
    SelectionState,
    WizardEvent,
    WizardEventType,
    WizardStep,
    reduce,
)

log = get_logger(__name__)


class MetadataSource(Protocol):
    def lookup(self, identifier: str) -> TorrentInfo: ...


class WizardController:
    def __init__(
        self,
        gateway: MetadataSource,
        *,
        task_runner: Optional[TaskRunner] = None,
        updates: Optional[UpdateQueue[WizardEvent]] = None,
    ) -> None:
        self._gateway = gateway
        self._task_runner = task_runner or TaskRunner(max_workers=1, context="wizard")
        self.updates: UpdateQueue[WizardEvent] = updates or UpdateQueue()
        self._state = SelectionState()

    @property
    def state(self) -> SelectionState:
        return self._state

    def dispatch(self, event: WizardEvent) -> SelectionState:
        previous = self._state
        self._state = reduce(previous, event)

        if self._state.busy and not previous.busy:
            entered = self._state.identifier
            future = self._task_runner.submit(
                TaskSpec(fn=self._lookup, args=(entered, entered.strip()), name="metadata_lookup")
            )
            future.add_done_callback(lambda f: self._on_lookup_done(f, entered))
        return self._state

    def pump(self, timeout: Optional[float] = None) -> SelectionState:
        """Apply queued background results; waits up to ``timeout`` for the first one."""

        if timeout is not None and self.updates.empty():
            event = self.updates.get(timeout=timeout)
            if event is not None:
                self.dispatch(event)
        self.updates.drain(self.dispatch)
        return self._state

    def play_request(self) -> PlayRequest:
        state = self._state
        if not state.launching or state.step is not WizardStep.READY:
            raise WizardError("nothing selected for playback")
        return PlayRequest(
            identifier=state.identifier.strip(),
            selected_path=state.selected_path,
            title=state.title,
            description=state.description,
            subtitle_candidates=state.subtitle_candidates,
        )

    def close(self) -> None:
        self._task_runner.close(wait=False)

    def _lookup(self, entered: str, identifier: str) -> None:
        log.info("getting_info", extra={"identifier": identifier})
        try:
            info = self._gateway.lookup(identifier)
        except GatewayError as exc:
            log.warning("lookup_failed", extra={"identifier": identifier, "error": str(exc)})
            self.updates.post(
                WizardEvent(WizardEventType.LOOKUP_FAILED, value=str(exc), identifier=entered)
            )
            return
        self.updates.post(WizardEvent(WizardEventType.LOOKUP_SUCCEEDED, value=info, identifier=entered))

    def _on_lookup_done(self, future: Future, entered: str) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        # GatewayError is turned into a notice inside _lookup; anything else lands here.
        log.error("lookup_crashed", extra={"identifier": entered.strip(), "error": str(exc)})
        self.updates.post(WizardEvent(WizardEventType.LOOKUP_FAILED, value=str(exc), identifier=entered))
