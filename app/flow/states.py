"""
app/flow/states.py

Purpose: Defines all wizard stages

- Enum of stages for tenant bots and for the master console
- Single source of truth for flow stages
- Exhaustive transition tables and validation
- Metadata for each stage (step numbers, owner-only flag)
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Type, TypeVar
from dataclasses import dataclass

# Reserved input that resets any stage to READY
CANCEL_TOKEN = "/cancel"

# Inputs starting with this marker are commands and may interrupt a wizard
COMMAND_PREFIX = "/"


class Stage(str, Enum):
    """
    Stages of a tenant bot session.
    READY is terminal; START marks a session that has never finished a flow.
    """

    READY = "READY"
    START = "START"

    # Owner: payment gateway credentials
    OWNER_AWAIT_PAYMENT_ID = "OWNER_AWAIT_PAYMENT_ID"
    OWNER_AWAIT_PAYMENT_SECRET = "OWNER_AWAIT_PAYMENT_SECRET"

    # Owner: AI credentials
    OWNER_AWAIT_AI_KEY = "OWNER_AWAIT_AI_KEY"
    OWNER_AWAIT_AI_MODEL = "OWNER_AWAIT_AI_MODEL"

    # Owner: personality prompt
    OWNER_AWAIT_PROMPT = "OWNER_AWAIT_PROMPT"

    # End user: new WhatsApp instance
    AWAIT_INSTANCE_NAME = "AWAIT_INSTANCE_NAME"


class MasterStage(str, Enum):
    """Stages of the master console session."""

    READY = "READY"

    # New tenant
    WAIT_NAME = "WAIT_NAME"
    WAIT_TOKEN = "WAIT_TOKEN"
    WAIT_OWNER_ID = "WAIT_OWNER_ID"

    # Tenant administration
    WAIT_LIMIT_VALUE = "WAIT_LIMIT_VALUE"
    WAIT_PRICE_VALUE = "WAIT_PRICE_VALUE"
    WAIT_RENEW_DAYS = "WAIT_RENEW_DAYS"

    # Global settings
    WAIT_GLOBAL_PRICE = "WAIT_GLOBAL_PRICE"


# Stages in which a session is not inside a wizard
IDLE_STAGES: FrozenSet[Stage] = frozenset({Stage.READY, Stage.START})

# Wizard steps: stage -> stages reachable by handling one input.
# Staying on the same stage (re-prompt) and cancelling to READY are always allowed.
VALID_TRANSITIONS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.READY: frozenset(),
    Stage.START: frozenset(),
    Stage.OWNER_AWAIT_PAYMENT_ID: frozenset({Stage.OWNER_AWAIT_PAYMENT_SECRET}),
    Stage.OWNER_AWAIT_PAYMENT_SECRET: frozenset({Stage.READY}),
    Stage.OWNER_AWAIT_AI_KEY: frozenset({Stage.OWNER_AWAIT_AI_MODEL}),
    Stage.OWNER_AWAIT_AI_MODEL: frozenset({Stage.READY}),
    Stage.OWNER_AWAIT_PROMPT: frozenset({Stage.READY}),
    Stage.AWAIT_INSTANCE_NAME: frozenset({Stage.READY}),
}

# Stages a wizard may be started at
ENTRY_STAGES: FrozenSet[Stage] = frozenset({
    Stage.OWNER_AWAIT_PAYMENT_ID,
    Stage.OWNER_AWAIT_AI_KEY,
    Stage.OWNER_AWAIT_PROMPT,
    Stage.AWAIT_INSTANCE_NAME,
})

MASTER_TRANSITIONS: Dict[MasterStage, FrozenSet[MasterStage]] = {
    MasterStage.READY: frozenset(),
    MasterStage.WAIT_NAME: frozenset({MasterStage.WAIT_TOKEN}),
    MasterStage.WAIT_TOKEN: frozenset({MasterStage.WAIT_OWNER_ID}),
    MasterStage.WAIT_OWNER_ID: frozenset({MasterStage.READY}),
    MasterStage.WAIT_LIMIT_VALUE: frozenset({MasterStage.READY}),
    MasterStage.WAIT_PRICE_VALUE: frozenset({MasterStage.READY}),
    MasterStage.WAIT_RENEW_DAYS: frozenset({MasterStage.READY}),
    MasterStage.WAIT_GLOBAL_PRICE: frozenset({MasterStage.READY}),
}

MASTER_ENTRY_STAGES: FrozenSet[MasterStage] = frozenset({
    MasterStage.WAIT_NAME,
    MasterStage.WAIT_LIMIT_VALUE,
    MasterStage.WAIT_PRICE_VALUE,
    MasterStage.WAIT_RENEW_DAYS,
    MasterStage.WAIT_GLOBAL_PRICE,
})


@dataclass
class StageMetadata:
    """
    Metadata associated with each wizard stage.
    """
    name: Stage
    display_name: str
    step_number: Optional[int] = None
    total_steps: Optional[int] = None
    owner_only: bool = False


STAGE_METADATA: Dict[Stage, StageMetadata] = {
    Stage.READY: StageMetadata(name=Stage.READY, display_name="Ready"),
    Stage.START: StageMetadata(name=Stage.START, display_name="New session"),
    Stage.OWNER_AWAIT_PAYMENT_ID: StageMetadata(
        name=Stage.OWNER_AWAIT_PAYMENT_ID,
        display_name="SyncPay Client ID",
        step_number=1,
        total_steps=2,
        owner_only=True,
    ),
    Stage.OWNER_AWAIT_PAYMENT_SECRET: StageMetadata(
        name=Stage.OWNER_AWAIT_PAYMENT_SECRET,
        display_name="SyncPay Client Secret",
        step_number=2,
        total_steps=2,
        owner_only=True,
    ),
    Stage.OWNER_AWAIT_AI_KEY: StageMetadata(
        name=Stage.OWNER_AWAIT_AI_KEY,
        display_name="OpenAI API Key",
        step_number=1,
        total_steps=2,
        owner_only=True,
    ),
    Stage.OWNER_AWAIT_AI_MODEL: StageMetadata(
        name=Stage.OWNER_AWAIT_AI_MODEL,
        display_name="AI Model",
        step_number=2,
        total_steps=2,
        owner_only=True,
    ),
    Stage.OWNER_AWAIT_PROMPT: StageMetadata(
        name=Stage.OWNER_AWAIT_PROMPT,
        display_name="Personality Prompt",
        step_number=1,
        total_steps=1,
        owner_only=True,
    ),
    Stage.AWAIT_INSTANCE_NAME: StageMetadata(
        name=Stage.AWAIT_INSTANCE_NAME,
        display_name="Instance Name",
        step_number=1,
        total_steps=1,
    ),
}


class InvalidTransitionError(Exception):
    def __init__(self, from_stage: Enum, to_stage: Enum):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"Invalid transition: {from_stage.value} -> {to_stage.value}")


class UnknownStageError(ValueError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown stage: {value!r}")


StageT = TypeVar("StageT", bound=Enum)


def parse_stage(value: object, stage_type: Type[StageT] = Stage) -> StageT:
    """Parse a stored stage tag. Raises UnknownStageError instead of guessing."""
    try:
        return stage_type(value)
    except ValueError:
        raise UnknownStageError(value) from None


def can_transition(
    from_stage: StageT,
    to_stage: StageT,
    table: Dict[StageT, FrozenSet[StageT]] = VALID_TRANSITIONS,
) -> bool:
    """Check if a single wizard step from_stage -> to_stage is valid."""
    if from_stage == to_stage:
        return True
    if to_stage.value == "READY":
        return True
    return to_stage in table.get(from_stage, frozenset())


def transition(
    from_stage: StageT,
    to_stage: StageT,
    table: Dict[StageT, FrozenSet[StageT]] = VALID_TRANSITIONS,
) -> StageT:
    """Validate a wizard step. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_stage, to_stage, table):
        raise InvalidTransitionError(from_stage, to_stage)
    return to_stage
