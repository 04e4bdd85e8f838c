from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.shortcuts import render
from django.urls import reverse
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.http import require_http_methods

from apps.common.api import AuthRequired, BackendError, api_request, clear_credentials, public_request, save_credentials
from apps.common.htmx import hx_redirect, is_hx
from apps.common.rate_limit import rate_limit

from .forms import LoginForm

logger = logging.getLogger(__name__)

ALLOWED_ROLES = ("SUPER_ADMIN", "MERCHANT_OWNER", "MERCHANT_STAFF")
LOGIN_PATH = "/api/auth/login"
LOGOUT_PATH = "/api/auth/logout"


def render_card(request: HttpRequest, ctx: dict, status: int | None = None) -> HttpResponse:
    if is_hx(request):
        return render(request, "auth/_card_login.html", ctx, status=status)
    return render(request, "auth/login.html", ctx, status=status)


def _safe_next(request: HttpRequest, target: str | None) -> str:
    if target and url_has_allowed_host_and_scheme(target, allowed_hosts={request.get_host()}):
        return target
    return reverse("dashboard:index")


@require_http_methods(["GET", "POST"])
def login_page(request: HttpRequest) -> HttpResponse:
    if request.method == "GET":
        return render_card(request, {"form": LoginForm(initial={"next": request.GET.get("next", "")})})

    rl = rate_limit("login", f"{request.META.get('REMOTE_ADDR')}", limit=20, window_seconds=60)
    if not rl.allowed:
        return HttpResponse("Too many attempts. Try again in a few seconds.", status=429)

    form = LoginForm(request.POST)
    if not form.is_valid():
        return render_card(request, {"form": form}, status=400)

    email = form.cleaned_data["email"]
    try:
        payload = public_request(
            "POST",
            LOGIN_PATH,
            json={"email": email, "password": form.cleaned_data["password"], "rememberMe": True},
        )
    except BackendError as exc:
        logger.warning("Login failed for email=%s from ip=%s status=%s", email, request.META.get("REMOTE_ADDR"), exc.status_code)
        message = exc.message if exc.status_code < 500 else "Could not reach the server. Please try again."
        return render_card(request, {"form": form, "error": message or "Invalid email or password"}, status=400)

    data = payload.get("data") or {}
    user = data.get("user") or {}
    if user.get("role") not in ALLOWED_ROLES:
        logger.info("Login refused for non-admin role=%s", user.get("role"))
        return render_card(request, {"form": form, "error": "This login is for merchant and admin accounts only."}, status=403)

    request.session.cycle_key()
    save_credentials(request, data.get("accessToken") or "", data.get("refreshToken"), user)
    logger.info("Login success user_id=%s role=%s", user.get("id"), user.get("role"))
    return hx_redirect(request, _safe_next(request, form.cleaned_data.get("next")))


@require_http_methods(["POST"])
def logout_view(request: HttpRequest) -> HttpResponse:
    # Best effort: the local session is cleared whatever the backend says
    try:
        api_request(request, "POST", LOGOUT_PATH)
    except (BackendError, AuthRequired) as exc:
        logger.info("Backend logout skipped: %s", exc)
    clear_credentials(request)
    request.session.flush()
    return hx_redirect(request, reverse("accounts:login"))
