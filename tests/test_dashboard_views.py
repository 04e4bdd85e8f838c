import re

import pytest
from django.urls import reverse

from apps.dashboard.transfer import CURRENCY_MISMATCH, TRANSFER_PATH

from .conftest import DummyResponse, flash_of

BALANCE = {"success": True, "data": {"balance": 250000, "currency": "IDR", "isLow": True, "orderFee": 250, "estimatedOrders": 1000}}
MERCHANTS = [
    {"id": "1", "name": "Warung Sari", "code": "SARI", "email": "sari@example.com", "city": "Denpasar", "isActive": True, "isOpen": True, "subscriptionStatus": {"type": "TRIAL"}},
    {"id": "2", "name": "Kopi Kita", "code": "KOPI", "email": "kopi@example.com", "city": "Jakarta", "isActive": False, "subscriptionStatus": {"type": "MONTHLY"}},
]
GROUPS = {"success": True, "data": {"groups": [{
    "main": {"id": "m1", "name": "Sari Pusat", "currency": "IDR", "balance": {"amount": 500000}},
    "branches": [
        {"id": "m2", "name": "Sari Kuta", "currency": "IDR", "balance": {"amount": 150000}},
        {"id": "m3", "name": "Sari Perth", "currency": "AUD", "balance": {"amount": 20}},
    ],
}]}}


@pytest.mark.django_db
def test_dashboard_requires_login(client):
    resp = client.get(reverse("dashboard:index"))
    assert resp.status_code == 302
    assert resp["Location"].startswith("/admin/login?next=")


@pytest.mark.django_db
def test_htmx_requests_get_hx_redirect_to_login(client):
    resp = client.get(reverse("dashboard:balance_card"), HTTP_HX_REQUEST="true")
    assert resp.status_code == 204
    assert resp["HX-Redirect"].startswith("/admin/login")


@pytest.mark.django_db
def test_balance_card_polls_and_flags_low_balance(admin_client, backend):
    backend.json("GET", "/api/merchant/balance", BALANCE)
    resp = admin_client.get(reverse("dashboard:balance_card"), HTTP_HX_REQUEST="true")
    body = resp.content.decode()
    assert 'hx-trigger="every 10s"' in body
    assert "Rp 250.000" in body
    assert "Low balance" in body
    assert "1000 orders" in body


@pytest.mark.django_db
def test_expired_session_redirects_to_login(admin_client, backend):
    backend.json("GET", "/api/merchant/balance", {"message": "expired"}, status=401)
    backend.json("POST", "/api/auth/refresh", {"message": "bad"}, status=401)
    resp = admin_client.get(reverse("dashboard:index"))
    assert resp.status_code == 302
    assert "admin_auth" not in admin_client.session


@pytest.mark.django_db
def test_transactions_pass_filters_and_pagination(admin_client, backend):
    backend.json("GET", "/api/merchant/balance", BALANCE)
    backend.json("GET", "/api/merchant/balance/transactions", {"success": True, "data": {
        "transactions": [{"id": "t1", "type": "DEPOSIT", "amount": 100000, "description": "Top up", "createdAt": "2024-05-01"}],
        "pagination": {"total": 45, "limit": 20, "offset": 20, "hasMore": True},
    }})
    resp = admin_client.get(reverse("dashboard:transactions"), {"type": "DEPOSIT", "q": "top", "page": "2"})
    assert resp.status_code == 200
    call = backend.calls_to("/api/merchant/balance/transactions")[0]
    assert call.query == {"limit": "20", "offset": "20", "type": "DEPOSIT", "search": "top"}
    body = resp.content.decode()
    assert "Top up" in body
    assert "Page 2 of 3" in body
    # Switching tab drops the page number
    assert 'href="/admin/dashboard/transactions/?q=top"' in body
    assert 'href="/admin/dashboard/transactions/?type=REFUND&amp;q=top"' in body
    # Polling re-reads the same page of the same list
    assert 'hx-get="/admin/dashboard/transactions/?type=DEPOSIT&amp;q=top&amp;page=2"' in body


@pytest.mark.django_db
def test_transactions_reject_inverted_dates(admin_client, backend):
    resp = admin_client.get(reverse("dashboard:transactions"), {"startDate": "2024-05-10", "endDate": "2024-05-01"})
    assert resp.status_code == 422
    assert backend.calls_to("/api/merchant/balance/transactions") == []


@pytest.mark.django_db
def test_export_streams_with_backend_filename(admin_client, backend):
    backend.on("GET", "/api/merchant/balance/transactions/export", DummyResponse(
        200, None, headers={"Content-Disposition": 'attachment; filename="saldo-mei.csv"', "Content-Type": "text/csv"}, content=b"id,amount\nt1,100\n",
    ))
    resp = admin_client.get(reverse("dashboard:transactions_export"), {"type": "REFUND", "q": "ignored"})
    assert resp.status_code == 200
    assert resp["Content-Disposition"] == 'attachment; filename="saldo-mei.csv"'
    assert b"".join(resp.streaming_content) == b"id,amount\nt1,100\n"
    assert backend.calls[0].params == {"type": "REFUND"}


@pytest.mark.django_db
def test_export_falls_back_to_default_filename(admin_client, backend):
    backend.on("GET", "/api/merchant/balance/transactions/export", DummyResponse(200, None, content=b"x"))
    resp = admin_client.get(reverse("dashboard:transactions_export"))
    assert resp["Content-Disposition"] == 'attachment; filename="transactions.csv"'


@pytest.mark.django_db
def test_merchants_page_is_superadmin_only(admin_client, backend):
    assert admin_client.get(reverse("dashboard:merchants")).status_code == 403
    assert backend.calls == []


@pytest.mark.django_db
def test_merchant_search_is_local_and_flagged(superadmin_client, backend):
    backend.json("GET", "/api/admin/merchants", {"success": True, "data": MERCHANTS})
    resp = superadmin_client.get(reverse("dashboard:merchants"), {"q": "jakarta"}, HTTP_HX_REQUEST="true")
    body = resp.content.decode()
    assert "Kopi Kita" in body
    assert "Warung Sari" not in body
    assert "among 2 loaded merchants" in body
    assert 'hx-trigger="every 30s"' in body
    assert backend.calls[0].query == {}


@pytest.mark.django_db
def test_merchant_status_and_store_labels(superadmin_client, backend):
    backend.json("GET", "/api/admin/merchants", {"success": True, "data": MERCHANTS})
    body = superadmin_client.get(reverse("dashboard:merchants"), {"status": "active"}).content.decode()
    assert "Store Open" in body
    assert "Kopi Kita" not in body


@pytest.mark.django_db
def test_merchant_toggle_puts_inverse_and_refreshes(superadmin_client, backend):
    backend.json("GET", "/api/admin/merchants", {"success": True, "data": MERCHANTS})
    backend.json("PUT", "/api/admin/merchants/1", {"success": True})
    resp = superadmin_client.post(reverse("dashboard:merchant_toggle", args=["1"]), {"is_active": "true"}, HTTP_HX_REQUEST="true")
    assert resp.status_code == 200
    assert backend.calls_to("/api/admin/merchants/1")[0].json == {"isActive": False}
    assert flash_of(resp)["message"] == "Merchant deactivated."
    assert len(backend.calls_to("/api/admin/merchants")) == 1


@pytest.mark.django_db
def test_merchant_delete_confirms_first(superadmin_client, backend):
    resp = superadmin_client.get(reverse("dashboard:merchant_delete", args=["1"]), {"name": "Warung Sari"})
    assert "Warung Sari" in resp.content.decode()
    assert backend.calls == []

    backend.json("GET", "/api/admin/merchants", {"success": True, "data": MERCHANTS[1:]})
    backend.json("DELETE", "/api/admin/merchants/1", {"success": True})
    resp = superadmin_client.post(reverse("dashboard:merchant_delete", args=["1"]), HTTP_HX_REQUEST="true")
    assert resp.status_code == 200
    assert "Warung Sari" not in resp.content.decode()


def _panel_url(body: str, panel_id: str) -> str:
    return re.search(rf'id="{panel_id}"\s+hx-get="([^"]*)"', body).group(1)


@pytest.mark.django_db
def test_toggle_keeps_list_filters_and_poll_url(superadmin_client, backend):
    backend.json("GET", "/api/admin/merchants", {"success": True, "data": MERCHANTS})
    backend.json("PUT", "/api/admin/merchants/2", {"success": True})
    list_url = reverse("dashboard:merchants")
    resp = superadmin_client.post(
        reverse("dashboard:merchant_toggle", args=["2"]),
        {"is_active": "false"},
        HTTP_HX_REQUEST="true",
        HTTP_HX_CURRENT_URL=f"http://testserver{list_url}?status=inactive",
    )
    body = resp.content.decode()
    assert "Kopi Kita" in body
    assert "Warung Sari" not in body
    poll_url = _panel_url(body, "merchants-panel").replace("&amp;", "&")
    assert poll_url == f"{list_url}?status=inactive"
    assert superadmin_client.get(poll_url, HTTP_HX_REQUEST="true").status_code == 200


@pytest.mark.django_db
def test_panel_after_delete_polls_the_list_not_the_action(superadmin_client, backend):
    backend.json("GET", "/api/admin/merchants", {"success": True, "data": MERCHANTS[1:]})
    backend.json("DELETE", "/api/admin/merchants/1", {"success": True})
    resp = superadmin_client.post(reverse("dashboard:merchant_delete", args=["1"]), HTTP_HX_REQUEST="true")
    assert _panel_url(resp.content.decode(), "merchants-panel") == reverse("dashboard:merchants")


@pytest.mark.django_db
def test_drivers_include_inactive_and_search(admin_client, backend):
    backend.json("GET", "/api/merchant/drivers", {"success": True, "data": [
        {"id": "d1", "name": "Agus", "email": "agus@example.com", "isActive": True},
        {"id": "d2", "name": "Wayan", "email": "wayan@example.com", "isActive": False},
    ]})
    body = admin_client.get(reverse("dashboard:drivers"), {"q": "WAYAN"}).content.decode()
    assert backend.calls[0].query == {"includeInactive": "1"}
    assert "Wayan" in body
    assert "Agus" not in body


@pytest.mark.django_db
def test_driver_toggle_failure_flashes_error(admin_client, backend):
    backend.json("PUT", "/api/merchant/drivers/d1", {"success": False, "message": "Driver has active deliveries"}, status=409)
    resp = admin_client.post(reverse("dashboard:driver_toggle", args=["d1"]), {"is_active": "true"}, HTTP_HX_REQUEST="true")
    assert resp.status_code == 422
    assert flash_of(resp)["message"] == "Driver has active deliveries"


@pytest.mark.django_db
def test_driver_toggle_keeps_search(admin_client, backend):
    backend.json("GET", "/api/merchant/drivers", {"success": True, "data": [
        {"id": "d1", "name": "Agus", "email": "agus@example.com", "isActive": True},
        {"id": "d2", "name": "Wayan", "email": "wayan@example.com", "isActive": False},
    ]})
    backend.json("PUT", "/api/merchant/drivers/d2", {"success": True})
    resp = admin_client.post(
        reverse("dashboard:driver_toggle", args=["d2"]),
        {"is_active": "false"},
        HTTP_HX_REQUEST="true",
        HTTP_HX_CURRENT_URL="http://testserver/admin/dashboard/drivers/?q=wayan",
    )
    body = resp.content.decode()
    assert "Wayan" in body
    assert "Agus" not in body


@pytest.mark.django_db
def test_drivers_fetch_error_offers_retry(admin_client, backend):
    backend.json("GET", "/api/merchant/drivers", {"message": "boom"}, status=500)
    body = admin_client.get(reverse("dashboard:drivers"), {"q": "agus"}, HTTP_HX_REQUEST="true").content.decode()
    assert "boom" in body
    assert 'hx-get="/admin/dashboard/drivers/?q=agus" hx-target="#drivers-panel"' in body
    assert ">Retry</button>" in body

    backend.json("GET", "/api/merchant/drivers", {"success": True, "data": [{"id": "d1", "name": "Agus", "email": "agus@example.com", "isActive": True}]})
    body = admin_client.get(reverse("dashboard:drivers"), {"q": "agus"}, HTTP_HX_REQUEST="true").content.decode()
    assert "Agus" in body
    assert "Retry" not in body


@pytest.mark.django_db
def test_group_panel_fetch_error_offers_retry(admin_client, backend):
    backend.json("GET", "/api/merchant/balance/group", {}, status=500)
    body = admin_client.get(reverse("dashboard:group_billing"), HTTP_HX_REQUEST="true").content.decode()
    assert f'hx-get="{reverse("dashboard:group_billing")}" hx-target="#group-panel"' in body


@pytest.mark.django_db
def test_group_billing_shows_totals(admin_client, backend):
    backend.json("GET", "/api/merchant/balance/group", GROUPS)
    body = admin_client.get(reverse("dashboard:group_billing")).content.decode()
    assert "group total Rp 650.020" in body
    assert "Sari Perth" in body


@pytest.mark.django_db
def test_cross_currency_transfer_is_blocked_before_network(admin_client, backend):
    backend.json("GET", "/api/merchant/balance/group", GROUPS)
    resp = admin_client.post(
        reverse("dashboard:transfer"),
        {"from_merchant_id": "m1", "to_merchant_id": "m3", "amount": "10000", "confirmed": "on"},
        HTTP_HX_REQUEST="true",
    )
    assert resp.status_code == 422
    assert CURRENCY_MISMATCH in resp.content.decode()
    assert backend.calls_to(TRANSFER_PATH) == []


@pytest.mark.django_db
def test_transfer_confirms_then_submits(admin_client, backend):
    backend.json("GET", "/api/merchant/balance/group", GROUPS)
    backend.json("POST", TRANSFER_PATH, {"success": True})
    data = {"from_merchant_id": "m1", "to_merchant_id": "m2", "amount": "25000", "note": "stock"}

    resp = admin_client.post(reverse("dashboard:transfer"), data, HTTP_HX_REQUEST="true")
    assert resp.status_code == 200
    assert "Confirm transfer" in resp.content.decode()
    assert backend.calls_to(TRANSFER_PATH) == []

    resp = admin_client.post(reverse("dashboard:transfer"), {**data, "confirmed": "on"}, HTTP_HX_REQUEST="true")
    assert resp.status_code == 200
    assert resp["HX-Retarget"] == "#group-panel"
    assert flash_of(resp)["type"] == "success"
    assert backend.calls_to(TRANSFER_PATH)[0].json == {"fromMerchantId": "m1", "toMerchantId": "m2", "amount": 25000.0, "note": "stock"}
    assert len(backend.calls_to("/api/merchant/balance/group")) == 2

    again = admin_client.post(reverse("dashboard:transfer"), {**data, "confirmed": "on"}, HTTP_HX_REQUEST="true")
    assert again.status_code == 409
    assert len(backend.calls_to(TRANSFER_PATH)) == 1


@pytest.mark.django_db
def test_subscription_settings_load_and_save(superadmin_client, backend):
    plan = {"id": "p1", "planKey": "default", "trialDays": 14, "depositMinimumIdr": 100000, "orderFeeIdr": 250,
            "monthlyPriceIdr": 100000, "depositMinimumAud": 15, "orderFeeAud": 0.04, "monthlyPriceAud": 15,
            "influencerFirstCommissionPercent": 10, "influencerRecurringCommissionPercent": 5}
    backend.json("GET", "/api/admin/subscription-plans", {"success": True, "data": [plan]})
    backend.json("PUT", "/api/admin/subscription-plans", {"success": True})

    body = superadmin_client.get(reverse("dashboard:subscription_settings")).content.decode()
    assert 'value="14"' in body

    form = {k: v for k, v in plan.items() if k not in ("id", "planKey")}
    form["trialDays"] = 30
    resp = superadmin_client.post(reverse("dashboard:subscription_settings"), form, HTTP_HX_REQUEST="true")
    assert resp.status_code == 200
    sent = backend.calls_to("/api/admin/subscription-plans", "PUT")[0].json
    assert sent["id"] == "p1"
    assert sent["trialDays"] == 30
    assert sent["orderFeeAud"] == 0.04


@pytest.mark.django_db
def test_subscription_commission_bounds(superadmin_client, backend):
    backend.json("GET", "/api/admin/subscription-plans", {"success": True, "data": [{"id": "p1"}]})
    form = {"trialDays": 30, "depositMinimumIdr": 1, "orderFeeIdr": 1, "monthlyPriceIdr": 1, "depositMinimumAud": 1,
            "orderFeeAud": 1, "monthlyPriceAud": 1, "influencerFirstCommissionPercent": 120, "influencerRecurringCommissionPercent": 5}
    resp = superadmin_client.post(reverse("dashboard:subscription_settings"), form, HTTP_HX_REQUEST="true")
    assert resp.status_code == 422
    assert backend.calls_to("/api/admin/subscription-plans", "PUT") == []


@pytest.mark.django_db
def test_profile_password_mismatch_is_caught_locally(admin_client, backend):
    backend.json("GET", "/api/admin/profile/get", {"success": True, "data": {"name": "Rina", "email": "rina@example.com"}})
    resp = admin_client.post(reverse("dashboard:profile"), {
        "name": "Rina", "email": "rina@example.com", "currentPassword": "oldpassword",
        "newPassword": "newpassword1", "confirmPassword": "newpassword2",
    }, HTTP_HX_REQUEST="true")
    assert resp.status_code == 422
    assert "New passwords do not match" in resp.content.decode()
    assert backend.calls_to("/api/admin/profile", "PUT") == []


@pytest.mark.django_db
def test_profile_update_refreshes_session_user(admin_client, backend):
    backend.json("GET", "/api/admin/profile/get", {"success": True, "data": {"name": "Rina", "email": "rina@example.com"}})
    backend.json("PUT", "/api/admin/profile", {"success": True, "data": {"name": "Rina Putri", "email": "rina@example.com"}})
    resp = admin_client.post(reverse("dashboard:profile"), {"name": "Rina Putri", "email": "RINA@example.com"}, HTTP_HX_REQUEST="true")
    assert resp.status_code == 200
    assert backend.calls_to("/api/admin/profile", "PUT")[0].json == {"name": "Rina Putri", "email": "rina@example.com", "phone": None}
    assert admin_client.session["admin_auth"]["user"]["name"] == "Rina Putri"
    assert admin_client.session["admin_auth"]["accessToken"] == "access-1"
