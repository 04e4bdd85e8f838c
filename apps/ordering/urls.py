from django.urls import path
from . import views

app_name = "ordering"

urlpatterns = [
    path("order", views.menu_browse, name="menu"),
    path("order/menu/<str:menu_id>", views.menu_item, name="menu_item"),
    path("cart", views.cart_review, name="cart"),
    path("cart/add", views.cart_add, name="cart_add"),
    path("cart/update", views.cart_update, name="cart_update"),
    path("cart/remove", views.cart_remove, name="cart_remove"),
    path("checkout", views.checkout_submit, name="checkout"),
    path("order-summary", views.order_summary, name="order_summary"),
]
