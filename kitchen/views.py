from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from erp.views import StoreAPIView

from .models import KitchenTicket
from .serializers import KitchenTicketSerializer
from .services import KitchenTicketGenerator


class CompleteTicketView(StoreAPIView):
    @extend_schema(
        summary="Complete kitchen ticket",
        description="Mark a PENDING kitchen ticket as COMPLETED. Completing it again is rejected.",
        parameters=[
            OpenApiParameter(
                name='ticket_id',
                type=OpenApiTypes.INT,
                location=OpenApiParameter.PATH,
                description='Kitchen ticket ID'
            )
        ],
        request=None,
        responses={
            200: KitchenTicketSerializer,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        }
    )
    def post(self, request, ticket_id):
        ticket = KitchenTicketGenerator(self.store).mark_complete(ticket_id)
        return Response(KitchenTicketSerializer(ticket).data)


class BranchTicketsView(StoreAPIView):
    @extend_schema(
        summary="Kitchen queue",
        description="Kitchen tickets of a branch, oldest first. Defaults to PENDING tickets; "
                    "pass status=ALL for every ticket.",
        parameters=[
            OpenApiParameter(
                name='branch_id',
                type=OpenApiTypes.INT,
                location=OpenApiParameter.PATH,
                description='Branch ID'
            ),
            OpenApiParameter(
                name='status',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                enum=[KitchenTicket.PENDING, KitchenTicket.COMPLETED, 'ALL'],
            )
        ],
        responses={
            200: KitchenTicketSerializer(many=True),
        }
    )
    def get(self, request, branch_id):
        ticket_status = request.query_params.get('status', KitchenTicket.PENDING)
        if ticket_status == 'ALL':
            ticket_status = None
        tickets = KitchenTicketGenerator(self.store).tickets_for_branch(branch_id, status=ticket_status)
        return Response(KitchenTicketSerializer(tickets, many=True).data)
