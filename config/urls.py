from django.http import HttpResponse
from django.urls import include, path, re_path
from django.views.generic import RedirectView

urlpatterns = [
    # Healthcheck endpoint
    path("healthz", lambda _request: HttpResponse("ok")),
    path("admin/", include("apps.accounts.auth_urls")),
    path("admin/dashboard/", include("apps.dashboard.urls")),
    path("admin/dashboard/addon-items/bulk-upload/", include("apps.bulkupload.urls")),
    path("admin/", RedirectView.as_view(pattern_name="dashboard:index", permanent=False)),
    re_path(r"^(?P<merchant_code>[A-Z0-9]{4,10})/", include("apps.ordering.urls")),
]
