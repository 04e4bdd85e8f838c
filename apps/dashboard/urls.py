from django.urls import path
from . import views, views_billing, views_drivers, views_merchants, views_settings, views_transactions

app_name = "dashboard"

urlpatterns = [
    path("", views.index, name="index"),
    path("balance", views.balance_card, name="balance_card"),
    path("transactions/", views_transactions.transactions_page, name="transactions"),
    path("transactions/export", views_transactions.transactions_export, name="transactions_export"),
    # Superadmin merchant management
    path("merchants/", views_merchants.merchants_page, name="merchants"),
    path("merchants/<str:merchant_id>/toggle", views_merchants.merchant_toggle, name="merchant_toggle"),
    path("merchants/<str:merchant_id>/delete", views_merchants.merchant_delete, name="merchant_delete"),
    path("drivers/", views_drivers.drivers_page, name="drivers"),
    path("drivers/<str:driver_id>/toggle", views_drivers.driver_toggle, name="driver_toggle"),
    path("drivers/<str:driver_id>/delete", views_drivers.driver_delete, name="driver_delete"),
    path("billing/group/", views_billing.group_billing, name="group_billing"),
    path("billing/transfer", views_billing.transfer, name="transfer"),
    path("settings/subscription/", views_settings.subscription_settings, name="subscription_settings"),
    path("profile/", views_settings.profile, name="profile"),
]
