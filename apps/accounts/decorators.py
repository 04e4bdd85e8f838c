from functools import wraps
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseForbidden

from apps.common.api import AuthRequired, get_credentials, get_token
from apps.common.htmx import hx_redirect


def login_url(request) -> str:
    return f"{settings.ADMIN_LOGIN_URL}?{urlencode({'next': request.get_full_path()})}"


def bearer_required(view_func=None, *, roles: tuple[str, ...] | None = None):
    """Send the user to the admin login when there is no usable API token.

    `roles` restricts the view to the listed backend roles (e.g. SUPER_ADMIN).
    """
    def decorator(view):
        @wraps(view)
        def _wrapped(request, *args, **kwargs):
            if not get_token(request):
                return hx_redirect(request, login_url(request))
            if roles:
                role = (get_credentials(request).get("user") or {}).get("role")
                if role not in roles:
                    return HttpResponseForbidden("You do not have permission to access this page.")
            try:
                return view(request, *args, **kwargs)
            except AuthRequired:
                return hx_redirect(request, login_url(request))
        return _wrapped

    if view_func is not None:
        return decorator(view_func)
    return decorator
