import asyncio

import pytest

from app.flow.dispatcher import build_wizard
from app.flow.states import (
    InvalidTransitionError,
    Stage,
    UnknownStageError,
    can_transition,
    parse_stage,
)
from app.flow.wizard import enter_wizard
from app.models.session import Session
from conftest import OWNER_CHAT_ID, make_event, make_tenant, sent_texts
from utils.constants import (
    ASK_PAYMENT_SECRET_MESSAGE,
    EMPTY_INPUT_MESSAGE,
    FLOW_CANCELLED_MESSAGE,
    FLOW_RESET_MESSAGE,
    INVALID_AI_KEY_MESSAGE,
    OWNER_ONLY_MESSAGE,
    PAYMENT_SAVED_MESSAGE,
    SAVE_FAILED_MESSAGE,
)


@pytest.fixture
def wizard():
    return build_wizard()


@pytest.fixture
def owner_ctx(bot_context, tenant_collections):
    """Owner context whose tenant also exists in storage."""
    def build(stage, **session_fields):
        tenant = make_tenant()
        tenant_collections.tenants.documents.append(tenant.to_document())
        return bot_context(
            event=make_event(chat_id=OWNER_CHAT_ID, text="input"),
            tenant=tenant,
            session=Session(stage=stage.value, **session_fields),
        )
    return build


def test_parse_stage_rejects_unknown_tag():
    assert parse_stage("READY") is Stage.READY
    with pytest.raises(UnknownStageError):
        parse_stage("AWAIT_COUPON")


def test_transition_table():
    assert can_transition(Stage.OWNER_AWAIT_PAYMENT_ID, Stage.OWNER_AWAIT_PAYMENT_SECRET)
    assert can_transition(Stage.OWNER_AWAIT_AI_KEY, Stage.OWNER_AWAIT_AI_KEY)
    assert can_transition(Stage.OWNER_AWAIT_AI_KEY, Stage.READY)
    assert not can_transition(Stage.OWNER_AWAIT_PAYMENT_ID, Stage.OWNER_AWAIT_AI_MODEL)


def test_enter_wizard_rejects_non_entry_stage(owner_ctx):
    ctx = owner_ctx(Stage.READY)

    with pytest.raises(InvalidTransitionError):
        asyncio.run(enter_wizard(ctx, Stage.OWNER_AWAIT_PAYMENT_SECRET, "prompt"))


def test_enter_wizard_clears_stale_scratch(owner_ctx, sessions_collection):
    ctx = owner_ctx(Stage.READY, temp_openai_key="sk-stale")

    asyncio.run(enter_wizard(ctx, Stage.OWNER_AWAIT_PAYMENT_ID, "prompt"))

    assert ctx.session.stage == Stage.OWNER_AWAIT_PAYMENT_ID.value
    assert ctx.session.temp_openai_key is None
    assert sessions_collection.documents[0]["data"]["stage"] == Stage.OWNER_AWAIT_PAYMENT_ID.value
    assert sent_texts(ctx.telegram) == ["prompt"]


def test_payment_flow_commits_on_completion(wizard, owner_ctx, repo):
    ctx = owner_ctx(Stage.OWNER_AWAIT_PAYMENT_ID)

    asyncio.run(wizard.handle(ctx, "client-1"))

    assert ctx.session.stage == Stage.OWNER_AWAIT_PAYMENT_SECRET.value
    assert ctx.session.temp_sync_id == "client-1"
    assert ctx.tenant.syncpay_client_id is None

    asyncio.run(wizard.handle(ctx, "secret-1"))

    assert ctx.session.stage == Stage.READY.value
    assert ctx.session.temp_sync_id is None
    assert ctx.tenant.syncpay_client_id == "client-1"
    assert ctx.tenant.syncpay_client_secret == "secret-1"
    stored = asyncio.run(repo.get(ctx.tenant.id))
    assert stored.has_payment_credentials

    texts = sent_texts(ctx.telegram)
    assert texts[:2] == [ASK_PAYMENT_SECRET_MESSAGE, PAYMENT_SAVED_MESSAGE]
    assert "Owner Panel" in texts[2]


def test_cancel_resets_any_stage(wizard, owner_ctx):
    ctx = owner_ctx(Stage.OWNER_AWAIT_PAYMENT_SECRET, temp_sync_id="client-1")

    asyncio.run(wizard.handle(ctx, "/cancel"))

    assert ctx.session.stage == Stage.READY.value
    assert ctx.session.temp_sync_id is None
    assert ctx.tenant.syncpay_client_id is None
    assert sent_texts(ctx.telegram) == [FLOW_CANCELLED_MESSAGE]


def test_invalid_ai_key_reprompts_without_persisting(wizard, owner_ctx, sessions_collection):
    ctx = owner_ctx(Stage.OWNER_AWAIT_AI_KEY)

    asyncio.run(wizard.handle(ctx, "not-a-key"))

    assert ctx.session.stage == Stage.OWNER_AWAIT_AI_KEY.value
    assert ctx.session.temp_openai_key is None
    assert sessions_collection.documents == []
    assert sent_texts(ctx.telegram) == [INVALID_AI_KEY_MESSAGE]


def test_ai_flow_accepts_model_label(wizard, owner_ctx):
    ctx = owner_ctx(Stage.OWNER_AWAIT_AI_KEY)

    asyncio.run(wizard.handle(ctx, "sk-test-123"))
    assert ctx.session.stage == Stage.OWNER_AWAIT_AI_MODEL.value

    asyncio.run(wizard.handle(ctx, "gpt-4o (powerful)"))

    assert ctx.session.stage == Stage.READY.value
    assert ctx.tenant.openai_api_key == "sk-test-123"
    assert ctx.tenant.openai_model == "gpt-4o"


def test_model_without_pending_key_resets(wizard, owner_ctx):
    ctx = owner_ctx(Stage.OWNER_AWAIT_AI_MODEL)

    asyncio.run(wizard.handle(ctx, "gpt-4o"))

    assert ctx.session.stage == Stage.READY.value
    assert ctx.tenant.openai_api_key is None
    assert sent_texts(ctx.telegram) == [FLOW_RESET_MESSAGE]


def test_unknown_stage_is_reset(wizard, bot_context):
    ctx = bot_context(session=Session(stage="AWAIT_COUPON"))

    asyncio.run(wizard.handle(ctx, "anything"))

    assert ctx.session.stage == Stage.READY.value
    assert sent_texts(ctx.telegram) == [FLOW_RESET_MESSAGE]


def test_owner_stage_reached_by_non_owner_is_reset(wizard, bot_context):
    ctx = bot_context(session=Session(stage=Stage.OWNER_AWAIT_PROMPT.value))

    asyncio.run(wizard.handle(ctx, "be rude"))

    assert ctx.session.stage == Stage.READY.value
    assert ctx.tenant.system_prompt is None
    assert sent_texts(ctx.telegram) == [OWNER_ONLY_MESSAGE]


def test_empty_input_keeps_stage(wizard, owner_ctx):
    ctx = owner_ctx(Stage.OWNER_AWAIT_PROMPT)

    asyncio.run(wizard.handle(ctx, "   "))

    assert ctx.session.stage == Stage.OWNER_AWAIT_PROMPT.value
    assert sent_texts(ctx.telegram) == [EMPTY_INPUT_MESSAGE]


def test_commit_failure_keeps_stage_and_live_tenant(wizard, owner_ctx, tenant_collections):
    ctx = owner_ctx(Stage.OWNER_AWAIT_PROMPT)
    tenant_collections.tenants.fail_writes = True

    asyncio.run(wizard.handle(ctx, "Be a friendly seller"))

    assert ctx.session.stage == Stage.OWNER_AWAIT_PROMPT.value
    assert ctx.tenant.system_prompt is None
    assert sent_texts(ctx.telegram) == [SAVE_FAILED_MESSAGE]
