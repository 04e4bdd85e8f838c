from apps.common.api import get_credentials


def admin_user(request):
    user = (get_credentials(request).get("user") or {}) if hasattr(request, "session") else {}
    return {"admin_user": user, "is_superadmin": user.get("role") == "SUPER_ADMIN"}
