import asyncio

import httpx
import pytest

from app.core.exceptions import ExternalServiceError
from app.services.ai_service import OpenAIService
from app.services.payment_service import AUTH_PATH, CASH_IN_PATH, PaymentService
from conftest import html_page, make_tenant


def syncpay_routes(cash_in: httpx.Response):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == AUTH_PATH:
            return httpx.Response(200, json={"access_token": "tok"})
        if request.url.path == CASH_IN_PATH:
            return cash_in
        return httpx.Response(404)
    return handler


def syncpay(handler) -> PaymentService:
    return PaymentService(
        base_url="https://syncpay.test",
        client_id="id",
        client_secret="secret",
        transport=httpx.MockTransport(handler),
    )


def complete(service: OpenAIService):
    return asyncio.run(service.complete(api_key="sk-abc", model="gpt-4o", system_prompt="Be kind", user_message="hi"))


# ============================================================
# OPENAI
# ============================================================

def test_completion_reads_first_choice():
    def handler(request):
        assert request.headers["Authorization"] == "Bearer sk-abc"
        return httpx.Response(200, json={"model": "gpt-4o-2024", "choices": [{"message": {"content": "Hello!"}}]})

    result = complete(OpenAIService(base_url="https://ai.test/v1", transport=httpx.MockTransport(handler)))

    assert result.content == "Hello!"
    assert result.model == "gpt-4o-2024"


def test_completion_html_reply_is_service_error():
    service = OpenAIService(base_url="https://ai.test/v1", transport=httpx.MockTransport(html_page))

    with pytest.raises(ExternalServiceError) as exc:
        complete(service)

    assert "<html>" in exc.value.details["body"]


def test_completion_non_object_reply_is_service_error():
    service = OpenAIService(
        base_url="https://ai.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=["unexpected"])),
    )

    with pytest.raises(ExternalServiceError):
        complete(service)


def test_completion_error_status():
    service = OpenAIService(
        base_url="https://ai.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(429, text="slow down")),
    )

    with pytest.raises(ExternalServiceError, match="429"):
        complete(service)


# ============================================================
# SYNCPAY
# ============================================================

def test_charge_returns_pix_code():
    charge = asyncio.run(
        syncpay(syncpay_routes(httpx.Response(200, json={"identifier": "c1", "pix_code": "PIX"})))
        .create_subscription_charge(make_tenant(), 90.9)
    )

    assert charge.id == "c1"
    assert charge.pix_code == "PIX"


def test_auth_html_reply_is_service_error():
    with pytest.raises(ExternalServiceError, match="auth"):
        asyncio.run(syncpay(html_page).create_subscription_charge(make_tenant(), 90.9))


def test_charge_html_reply_is_service_error():
    cash_in = httpx.Response(200, text="<html>oops</html>", headers={"Content-Type": "text/html"})

    with pytest.raises(ExternalServiceError, match="charge"):
        asyncio.run(syncpay(syncpay_routes(cash_in)).create_subscription_charge(make_tenant(), 90.9))


def test_unconfigured_billing():
    service = PaymentService(base_url="https://syncpay.test", client_id="", client_secret="")

    with pytest.raises(ExternalServiceError):
        asyncio.run(service.create_subscription_charge(make_tenant(), 90.9))
