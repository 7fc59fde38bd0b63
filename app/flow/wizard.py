"""
app/flow/wizard.py

Purpose: Wizard engine for multi-step dialogs

- One step handler per stage
- Reserved /cancel resets any stage
- Unknown or unhandled stage tags are reset, never guessed
- Each handled input moves the session exactly one step along the transition table
- Tenant fields are committed only when a flow completes successfully
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Optional, Type

from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.flow.states import (
    CANCEL_TOKEN,
    ENTRY_STAGES,
    IDLE_STAGES,
    STAGE_METADATA,
    VALID_TRANSITIONS,
    InvalidTransitionError,
    Stage,
    StageMetadata,
    UnknownStageError,
    parse_stage,
    transition,
)
from utils.constants import (
    EMPTY_INPUT_MESSAGE,
    FLOW_CANCELLED_MESSAGE,
    FLOW_RESET_MESSAGE,
    OWNER_ONLY_MESSAGE,
    SAVE_FAILED_MESSAGE,
)

logger = get_logger(__name__)

IDLE_STAGE_VALUES = frozenset(stage.value for stage in IDLE_STAGES)


@dataclass
class WizardResult:
    """
    Outcome of one wizard step.

    next_stage: where the session goes; the current stage means "re-prompt"
    reply: text sent back to the chat
    committed_fields: tenant fields to persist (only on a completing step)
    after: coroutine run once the reply is sent (e.g. re-render a dashboard)
    """
    next_stage: Enum
    reply: Optional[str] = None
    reply_markup: Optional[Dict[str, Any]] = None
    committed_fields: Dict[str, Any] = field(default_factory=dict)
    after: Optional[Callable[[Any], Awaitable[Any]]] = None


StepHandler = Callable[[Any, str], Awaitable[WizardResult]]
CommitHook = Callable[[Any, Dict[str, Any]], Awaitable[None]]


def is_in_wizard(session: Any) -> bool:
    return session.stage not in IDLE_STAGE_VALUES


async def enter_wizard(
    ctx: Any,
    stage: Enum,
    prompt: str,
    reply_markup: Optional[Dict[str, Any]] = None,
    entry_stages: FrozenSet[Enum] = ENTRY_STAGES,
    scratch: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Starts a flow: stale scratch data is dropped, the stage set and the first prompt sent.

    `scratch` seeds session attributes the flow needs (e.g. the tenant being edited).
    """
    if stage not in entry_stages:
        raise InvalidTransitionError(type(stage)("READY"), stage)
    ctx.session.clear_temp()
    for key, value in (scratch or {}).items():
        setattr(ctx.session, key, value)
    ctx.session.stage = stage.value
    await ctx.save()
    await ctx.reply(prompt, reply_markup=reply_markup)


class WizardEngine:
    """
    Drives a table of stage -> step handler.

    The context passed to handle() needs: `session` (with `stage` and
    `clear_temp()`), `save()`, `reply()`, `is_owner` and `log_extra()`.
    """

    def __init__(
        self,
        steps: Mapping[Enum, StepHandler],
        stage_type: Type[Enum] = Stage,
        transitions: Mapping[Enum, FrozenSet[Enum]] = VALID_TRANSITIONS,
        metadata: Optional[Mapping[Enum, StageMetadata]] = STAGE_METADATA,
        commit: Optional[CommitHook] = None,
    ):
        self._steps = dict(steps)
        self._stage_type = stage_type
        self._transitions = transitions
        self._metadata = metadata or {}
        self._commit = commit
        self._ready = stage_type("READY")

    @property
    def stages(self):
        return frozenset(self._steps)

    async def handle(self, ctx: Any, text: Optional[str]) -> WizardResult:
        """
        Feeds one input to the session's current stage.

        Persists the session at most once (re-prompts persist nothing) and
        sends at most one reply besides whatever the step itself sends.
        """
        text = (text or "").strip()

        if text == CANCEL_TOKEN:
            logger.info("Wizard cancelled", extra=ctx.log_extra())
            return await self._finish(ctx, WizardResult(self._ready, FLOW_CANCELLED_MESSAGE))

        try:
            stage = parse_stage(ctx.session.stage, self._stage_type)
        except UnknownStageError as e:
            logger.warning(f"Resetting session: {e}", extra=ctx.log_extra())
            return await self._finish(ctx, WizardResult(self._ready, FLOW_RESET_MESSAGE))

        step = self._steps.get(stage)
        if step is None:
            logger.warning(f"No step handler for stage {stage.value}, resetting", extra=ctx.log_extra())
            return await self._finish(ctx, WizardResult(self._ready, FLOW_RESET_MESSAGE))

        meta = self._metadata.get(stage)
        if meta is not None and meta.owner_only and not ctx.is_owner:
            logger.warning("Owner-only stage reached by non-owner, resetting", extra=ctx.log_extra())
            return await self._finish(ctx, WizardResult(self._ready, OWNER_ONLY_MESSAGE))

        if not text:
            result = WizardResult(stage, EMPTY_INPUT_MESSAGE)
            await ctx.reply(result.reply)
            return result

        result = await step(ctx, text)

        try:
            transition(stage, result.next_stage, self._transitions)
        except InvalidTransitionError as e:
            logger.error(f"Step handler broke the transition table: {e}", extra=ctx.log_extra())
            return await self._finish(ctx, WizardResult(self._ready, FLOW_RESET_MESSAGE))

        # Re-prompt: nothing changed, nothing persisted
        if result.next_stage == stage and not result.committed_fields:
            if result.reply:
                await ctx.reply(result.reply, reply_markup=result.reply_markup)
            return result

        if result.committed_fields and self._commit is not None:
            try:
                await self._commit(ctx, result.committed_fields)
            except StoreError as e:
                logger.error(f"Commit failed, staying on {stage.value}: {e.message}", extra=ctx.log_extra())
                failed = WizardResult(stage, SAVE_FAILED_MESSAGE)
                await ctx.reply(failed.reply)
                return failed

        return await self._finish(ctx, result)

    async def _finish(self, ctx: Any, result: WizardResult) -> WizardResult:
        ctx.session.stage = result.next_stage.value
        if result.next_stage == self._ready:
            ctx.session.clear_temp()
        await ctx.save()

        if result.reply:
            await ctx.reply(result.reply, reply_markup=result.reply_markup)
        if result.after is not None:
            await result.after(ctx)
        return result
