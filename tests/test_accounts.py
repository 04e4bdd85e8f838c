import pytest
from django.urls import reverse

from apps.common.api import CREDENTIALS_SESSION_KEY

LOGIN_OK = {
    "success": True,
    "data": {
        "accessToken": "access-9",
        "refreshToken": "refresh-9",
        "user": {"id": "u9", "name": "Dewi", "email": "dewi@example.com", "role": "MERCHANT_OWNER"},
    },
}


@pytest.mark.django_db
def test_login_page_renders(client):
    resp = client.get(reverse("accounts:login"))
    assert resp.status_code == 200
    assert b"Sign in" in resp.content


@pytest.mark.django_db
def test_login_stores_tokens_and_redirects(client, backend):
    backend.json("POST", "/api/auth/login", LOGIN_OK)
    resp = client.post(
        reverse("accounts:login"),
        {"email": "Dewi@Example.com", "password": "secret123", "next": "/admin/dashboard/transactions/"},
        HTTP_HX_REQUEST="true",
    )
    assert resp.status_code == 204
    assert resp["HX-Redirect"] == "/admin/dashboard/transactions/"
    assert backend.calls[0].json == {"email": "dewi@example.com", "password": "secret123", "rememberMe": True}
    creds = client.session[CREDENTIALS_SESSION_KEY]
    assert creds["accessToken"] == "access-9"
    assert creds["refreshToken"] == "refresh-9"


@pytest.mark.django_db
def test_login_ignores_offsite_next(client, backend):
    backend.json("POST", "/api/auth/login", LOGIN_OK)
    resp = client.post(reverse("accounts:login"), {"email": "dewi@example.com", "password": "secret123", "next": "https://evil.test/"})
    assert resp.status_code == 302
    assert resp["Location"] == reverse("dashboard:index")


@pytest.mark.django_db
def test_customer_accounts_are_refused(client, backend):
    customer = {"success": True, "data": {**LOGIN_OK["data"], "user": {"id": "c1", "role": "CUSTOMER"}}}
    backend.json("POST", "/api/auth/login", customer)
    resp = client.post(reverse("accounts:login"), {"email": "c@example.com", "password": "secret123"})
    assert resp.status_code == 403
    assert CREDENTIALS_SESSION_KEY not in client.session


@pytest.mark.django_db
def test_wrong_password_shows_server_message(client, backend):
    backend.json("POST", "/api/auth/login", {"success": False, "message": "Invalid email or password"}, status=401)
    resp = client.post(reverse("accounts:login"), {"email": "dewi@example.com", "password": "secret123"}, HTTP_HX_REQUEST="true")
    assert resp.status_code == 400
    assert b"Invalid email or password" in resp.content
    assert b"<html" not in resp.content


@pytest.mark.django_db
def test_logout_clears_credentials_even_if_backend_fails(admin_client, backend):
    backend.json("POST", "/api/auth/logout", {}, status=500)
    resp = admin_client.post(reverse("accounts:logout"))
    assert resp.status_code == 302
    assert resp["Location"] == reverse("accounts:login")
    assert CREDENTIALS_SESSION_KEY not in admin_client.session
