from django.urls import path
from . import auth_views as views


app_name = "accounts"

urlpatterns = [
    path("login", views.login_page, name="login"),
    path("logout", views.logout_view, name="logout"),
]
