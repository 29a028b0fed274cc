from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("guard.urls")),
]

handler404 = "guard.exceptions.json_not_found"
handler500 = "guard.exceptions.json_server_error"
