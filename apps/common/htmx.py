import json

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import redirect


def is_hx(request: HttpRequest) -> bool:
    return (
        request.headers.get("HX-Request") == "true"
        or request.META.get("HTTP_HX_REQUEST") == "true"
    )


def flash(resp: HttpResponse, kind: str, title: str, message: str) -> HttpResponse:
    resp["HX-Trigger"] = json.dumps({"flash": {"type": kind, "title": title, "message": message}})
    return resp


def flash_error(message: str, title: str = "Oops", status: int = 422) -> JsonResponse:
    resp = JsonResponse({"flash": {"type": "error", "title": title, "message": message}}, status=status)
    return flash(resp, "error", title, message)


def hx_redirect(request: HttpRequest, url: str) -> HttpResponse:
    if is_hx(request):
        resp = HttpResponse(status=204)
        resp["HX-Redirect"] = url
        return resp
    return redirect(url)
