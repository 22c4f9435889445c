from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from erp.views import StoreAPIView

from .serializers import BillSerializer, BillTotalsSerializer, GenerateBillSerializer
from .services import BillingEngine

ORDER_ID_PARAMETER = OpenApiParameter(
    name='order_id',
    type=OpenApiTypes.INT,
    location=OpenApiParameter.PATH,
    description='Order ID'
)


class BillView(StoreAPIView):
    """Generate (once) and view the bill of an order"""

    @extend_schema(
        summary="Generate bill",
        description="Compute the bill from the order's items, store it and mark the order BILLED. "
                    "Succeeds at most once per order.",
        parameters=[ORDER_ID_PARAMETER],
        request=GenerateBillSerializer,
        responses={
            201: BillTotalsSerializer,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
        examples=[
            OpenApiExample(
                'Generate Bill Request',
                summary='Pay by card',
                value={'payment_method': 'CARD'}
            ),
            OpenApiExample(
                'Bill Totals',
                summary='Two lines: 2 x 100.00 @ 5%, 1 x 50.00 @ 12%',
                value={'order_id': 7, 'subtotal': '250.00', 'tax': '16.00', 'net': '266.00'},
                response_only=True
            ),
            OpenApiExample(
                'Already Billed',
                summary='Second attempt on the same order',
                value={'error': 'Order 7 has already been billed', 'kind': 'AlreadyBilled'},
                response_only=True,
                status_codes=['409']
            )
        ]
    )
    def post(self, request, order_id):
        serializer = GenerateBillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        totals = BillingEngine(self.store).generate_bill(
            order_id, serializer.validated_data['payment_method']
        )
        data = BillTotalsSerializer({'order_id': order_id, **totals._asdict()}).data
        return Response(data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="View bill",
        description="Return the stored bill of an order. Never recomputed.",
        parameters=[ORDER_ID_PARAMETER],
        responses={
            200: BillSerializer,
            404: OpenApiTypes.OBJECT,
        }
    )
    def get(self, request, order_id):
        bill = BillingEngine(self.store).view_bill(order_id)
        return Response(BillSerializer(bill).data)
