from django.urls import path
from . import views

app_name = "bulkupload"

urlpatterns = [
    path("", views.upload_page, name="upload"),
    path("template", views.download_template, name="template"),
    path("export", views.export_items, name="export"),
    path("upload", views.upload_file, name="upload_file"),
    path("rows/<int:row_index>/edit", views.edit_row, name="edit_row"),
    path("rows/<int:row_index>/remove", views.remove_row, name="remove_row"),
    path("clear", views.clear_draft, name="clear"),
    path("save", views.save_draft, name="save"),
]
