from django.urls import path
from . import views

urlpatterns = [
    path('<int:order_id>/bill/', views.BillView.as_view(), name='bill'),
]
