from django.urls import path
from . import views

urlpatterns = [
    path('tickets/<int:ticket_id>/complete/', views.CompleteTicketView.as_view(), name='complete_ticket'),
    path('branches/<int:branch_id>/tickets/', views.BranchTicketsView.as_view(), name='branch_tickets'),
]
