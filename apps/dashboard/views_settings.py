from __future__ import annotations

import logging

from django.shortcuts import render
from django.views.decorators.http import require_http_methods

from apps.accounts.decorators import bearer_required
from apps.common.api import BackendError, api_request, get_credentials, mutate, query_static, save_credentials
from apps.common.htmx import flash

from .forms import ProfileForm, SubscriptionPlanForm
from .views import payload_data, render_panel

log = logging.getLogger(__name__)

PLANS_URL = "/api/admin/subscription-plans"
PROFILE_URL = "/api/admin/profile/get"
PROFILE_UPDATE_PATH = "/api/admin/profile"


def _first_plan(result) -> dict | None:
    data = payload_data(result)
    if isinstance(data, dict):
        data = data.get("plans") or [data]
    return (data or [None])[0]


@require_http_methods(["GET", "POST"])
@bearer_required(roles=("SUPER_ADMIN",))
def subscription_settings(request):
    result = query_static(request, PLANS_URL)
    plan = _first_plan(result)

    if request.method == "GET":
        form = SubscriptionPlanForm(initial=SubscriptionPlanForm.initial_from_plan(plan))
        ctx = {"form": form, "plan": plan, "result": result}
        return render_panel(request, "dashboard/subscription_settings.html", "dashboard/_subscription_form.html", ctx)

    form = SubscriptionPlanForm(request.POST)
    if not plan:
        ctx = {"form": form, "plan": None, "result": result, "error": "No subscription plan found."}
        return render(request, "dashboard/_subscription_form.html", ctx, status=404)
    if not form.is_valid():
        return render(request, "dashboard/_subscription_form.html", {"form": form, "plan": plan, "result": result}, status=422)

    try:
        api_request(request, "PUT", PLANS_URL, json=form.to_payload(plan["id"]))
    except BackendError as exc:
        log.warning("[plans] update %s failed: %s", plan["id"], exc.message)
        ctx = {"form": form, "plan": plan, "result": result, "error": exc.message or "Failed to save settings"}
        return render(request, "dashboard/_subscription_form.html", ctx, status=422)

    log.info("[plans] updated %s", plan["id"])
    fresh = mutate(request, PLANS_URL)
    resp = render(request, "dashboard/_subscription_form.html", {"form": form, "plan": _first_plan(fresh), "result": fresh})
    return flash(resp, "success", "Saved", "Subscription settings updated.")


@require_http_methods(["GET", "POST"])
@bearer_required
def profile(request):
    result = query_static(request, PROFILE_URL)
    current = payload_data(result) or {}

    if request.method == "GET":
        form = ProfileForm(initial={k: current.get(k) for k in ("name", "email", "phone")})
        return render_panel(request, "dashboard/profile.html", "dashboard/_profile_form.html", {"form": form, "result": result})

    form = ProfileForm(request.POST)
    if not form.is_valid():
        return render(request, "dashboard/_profile_form.html", {"form": form, "result": result}, status=422)

    try:
        payload = api_request(request, "PUT", PROFILE_UPDATE_PATH, json=form.to_payload())
    except BackendError as exc:
        ctx = {"form": form, "result": result, "error": exc.message or "Failed to update profile"}
        return render(request, "dashboard/_profile_form.html", ctx, status=422)

    creds = get_credentials(request)
    user = {**(creds.get("user") or {}), **(payload.get("data") or {})}
    save_credentials(request, creds.get("accessToken") or "", creds.get("refreshToken"), user)
    mutate(request, PROFILE_URL)
    fresh_form = ProfileForm(initial={k: user.get(k) for k in ("name", "email", "phone")})
    resp = render(request, "dashboard/_profile_form.html", {"form": fresh_form, "result": result})
    return flash(resp, "success", "Profile saved", "Your profile was updated.")
