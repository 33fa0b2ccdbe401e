"""
RYT DID Onboarding State Machine
Step progression for the identity onboarding wizard.

The session owns the active step, the data collected by each step, the
completion gate of the current step and a verification score that reflects
how much identity proofing the user actually performed. Skipping identity
capture is sticky and reroutes both forward and backward navigation around
the liveness and extraction steps.

All mutators are serialized behind a per-session lock. Preconditions that do
not hold turn the call into a silent no-op; sequencing mistakes never raise.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Step(IntEnum):
    """Wizard steps in navigation order."""
    WALLET_CONNECTION = 0
    RECAPTCHA = 1
    IMAGE_SELECTION = 2
    LIVENESS_VERIFICATION = 3
    EXTRACTION = 4
    VERIFICATION = 5
    MINTING = 6
    COMPLETED = 7

    @property
    def label(self) -> str:
        return STEP_DETAILS[self][0]

    @property
    def progress(self) -> int:
        return STEP_DETAILS[self][1]


# Stepper label and progress percentage per step
STEP_DETAILS = {
    Step.WALLET_CONNECTION: ("Connect Wallet", 10),
    Step.RECAPTCHA: ("Verify Human", 15),
    Step.IMAGE_SELECTION: ("Select ID", 20),
    Step.LIVENESS_VERIFICATION: ("Proof of Liveness", 30),
    Step.EXTRACTION: ("Verify Info", 40),
    Step.VERIFICATION: ("Validate Info", 60),
    Step.MINTING: ("Mint DID", 80),
    Step.COMPLETED: ("Complete", 100),
}


# Verification score per (step, skipped identity verification).
# (EXTRACTION, True) cannot be reached by navigation; it keeps the unskipped value.
SCORE_TABLE = {
    (Step.WALLET_CONNECTION, False): 10,
    (Step.WALLET_CONNECTION, True): 10,
    (Step.RECAPTCHA, False): 15,
    (Step.RECAPTCHA, True): 15,
    (Step.IMAGE_SELECTION, False): 25,
    (Step.IMAGE_SELECTION, True): 25,
    (Step.LIVENESS_VERIFICATION, False): 35,
    (Step.LIVENESS_VERIFICATION, True): 35,
    (Step.EXTRACTION, False): 60,
    (Step.EXTRACTION, True): 60,
    (Step.VERIFICATION, False): 75,
    (Step.VERIFICATION, True): 40,
    (Step.MINTING, False): 92,
    (Step.MINTING, True): 60,
    (Step.COMPLETED, False): 100,
    (Step.COMPLETED, True): 100,
}

# Steps bypassed once identity verification has been skipped
IDENTITY_CAPTURE_STEPS = frozenset({Step.LIVENESS_VERIFICATION, Step.EXTRACTION})

INITIAL_STEP = Step.RECAPTCHA
INITIAL_SCORE = 10

DEMO_IDENTITY = {
    "firstName": "John",
    "lastName": "Doe",
    "dateOfBirth": "1990-01-01",
    "nationality": "International",
    "documentType": "None",
    "documentNumber": "DEMO-12345",
}

DID_PREFIX = "did:ryt:"


def score_for(step: Step, skipped: bool) -> int:
    """Look up the verification score for a step under the given skip state."""
    return SCORE_TABLE[(Step(step), bool(skipped))]


@dataclass
class SessionState:
    """Mutable aggregate owned by one wizard session."""
    current_step: Step = INITIAL_STEP
    did_data: Dict[str, Any] = field(default_factory=lambda: {"captchaCompleted": False})
    is_step_completed: bool = False
    verification_score: int = INITIAL_SCORE
    skipped_identity_verification: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_step": int(self.current_step),
            "current_step_name": self.current_step.name,
            "step_label": self.current_step.label,
            "progress": self.current_step.progress,
            "is_step_completed": self.is_step_completed,
            "verification_score": self.verification_score,
            "skipped_identity_verification": self.skipped_identity_verification,
            "did_data": copy.deepcopy(self.did_data),
        }


Listener = Callable[[SessionState], None]


class DIDSession:
    """
    Onboarding wizard session.

    The operations below are the only mutators of the wrapped SessionState.
    Every observable change bumps ``revision`` once and notifies subscribers
    with a snapshot of the new state.
    """

    def __init__(self, state: Optional[SessionState] = None):
        self._state = state or SessionState()
        self._lock = threading.RLock()
        # Held by step handlers across a collaborator call and its result
        self.handler_lock = threading.RLock()
        self._listeners: List[Listener] = []
        self.revision = 0

    # ============ Read access ============

    @property
    def current_step(self) -> Step:
        return self._state.current_step

    @property
    def is_step_completed(self) -> bool:
        return self._state.is_step_completed

    @property
    def verification_score(self) -> int:
        return self._state.verification_score

    @property
    def skipped_identity_verification(self) -> bool:
        return self._state.skipped_identity_verification

    def get(self, key: str, default: Any = None) -> Any:
        """Read a single collected field."""
        with self._lock:
            return self._state.did_data.get(key, default)

    def snapshot(self) -> SessionState:
        """Return a deep copy of the session state."""
        with self._lock:
            return copy.deepcopy(self._state)

    def did_string(self) -> str:
        """DID shown to the user: token id, else wallet address, else a placeholder."""
        with self._lock:
            data = self._state.did_data
            identifier = data.get("didIdentifier") or data.get("walletAddress") or "0x0"
        return f"{DID_PREFIX}{identifier}"

    def can_advance(self) -> bool:
        with self._lock:
            return self._state.current_step < Step.COMPLETED and self._state.is_step_completed

    def can_retreat(self) -> bool:
        with self._lock:
            return self._state.current_step > Step.RECAPTCHA

    # ============ Notification ============

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback for state changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, reason: str) -> None:
        # Caller holds the lock
        self.revision += 1
        logger.debug(
            "Session transition (%s): step=%s completed=%s score=%s skipped=%s",
            reason,
            self._state.current_step.name,
            self._state.is_step_completed,
            self._state.verification_score,
            self._state.skipped_identity_verification,
        )
        if self._listeners:
            state = copy.deepcopy(self._state)
            for listener in list(self._listeners):
                listener(state)

    # ============ Mutators ============

    def update_data(self, patch: Dict[str, Any]) -> None:
        """Merge ``patch`` into the collected data unless every value is already present."""
        with self._lock:
            data = self._state.did_data
            changed = any(key not in data or data[key] != value for key, value in patch.items())
            if not changed:
                return
            data.update(patch)
            self._commit("update_data")

    def mark_step_completed(self, done: bool) -> None:
        with self._lock:
            if self._state.is_step_completed == bool(done):
                return
            self._state.is_step_completed = bool(done)
            self._commit("mark_step_completed")

    def set_verification_score(self, score: int) -> None:
        """Overwrite the score. No validation against SCORE_TABLE."""
        with self._lock:
            if self._state.verification_score == score:
                return
            expected = score_for(self._state.current_step, self._state.skipped_identity_verification)
            if score != expected:
                logger.debug("Score %s set outside table value %s for %s",
                             score, expected, self._state.current_step.name)
            self._state.verification_score = score
            self._commit("set_verification_score")

    def set_current_step(self, step: Step) -> None:
        """Jump to ``step`` without touching score or completion."""
        with self._lock:
            step = Step(step)
            if self._state.current_step == step:
                return
            self._state.current_step = step
            self._commit("set_current_step")

    def advance(self) -> None:
        """Go to the next step if the current one is completed."""
        with self._lock:
            state = self._state
            if state.current_step >= Step.COMPLETED or not state.is_step_completed:
                return

            next_step = Step(state.current_step + 1)
            if state.skipped_identity_verification and next_step in IDENTITY_CAPTURE_STEPS:
                next_step = Step.VERIFICATION

            state.current_step = next_step
            state.is_step_completed = False
            state.verification_score = score_for(next_step, state.skipped_identity_verification)
            self._commit("advance")

    def retreat(self) -> None:
        """Go back one step; Back never leaves RECAPTCHA."""
        with self._lock:
            state = self._state
            if state.current_step <= Step.RECAPTCHA:
                return

            leaving = state.current_step
            prev_step = Step(leaving - 1)
            if state.skipped_identity_verification and leaving == Step.VERIFICATION:
                prev_step = Step.IMAGE_SELECTION

            # Backing out of image selection forces the CAPTCHA to be redone
            redo_captcha = leaving == Step.IMAGE_SELECTION
            if redo_captcha:
                state.did_data["captchaCompleted"] = False

            state.current_step = prev_step
            state.verification_score = score_for(prev_step, state.skipped_identity_verification)
            state.is_step_completed = not (redo_captcha and prev_step == Step.RECAPTCHA)
            self._commit("retreat")

    def skip_identity_verification(self) -> None:
        """Substitute demo identity data and jump past the identity capture steps."""
        with self._lock:
            state = self._state
            origin = state.current_step

            if origin == Step.IMAGE_SELECTION:
                target, score = Step.LIVENESS_VERIFICATION, 25
            elif origin == Step.LIVENESS_VERIFICATION and not state.skipped_identity_verification:
                target, score = Step.EXTRACTION, 40
            else:
                target, score = Step.VERIFICATION, 25

            state.did_data["isDemo"] = True
            state.did_data["demoData"] = dict(DEMO_IDENTITY)
            state.current_step = target
            state.is_step_completed = True
            state.verification_score = score
            state.skipped_identity_verification = True
            logger.info("Identity verification skipped at %s, jumping to %s", origin.name, target.name)
            self._commit("skip_identity_verification")


def steps_config() -> List[Dict[str, Any]]:
    """Stepper configuration for the presentation layer."""
    return [
        {"step": int(step), "name": step.name, "label": step.label, "progress": step.progress}
        for step in Step
    ]
