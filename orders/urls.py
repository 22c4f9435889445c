from django.urls import path
from . import views

urlpatterns = [
    path('', views.CreateOrderView.as_view(), name='create_order'),
    path('<int:order_id>/', views.GetOrderView.as_view(), name='get_order'),
    path('<int:order_id>/items/', views.AddItemView.as_view(), name='add_item'),
    path('<int:order_id>/status/', views.UpdateStatusView.as_view(), name='update_status'),
]
