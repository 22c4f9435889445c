from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from erp.views import StoreAPIView

from .serializers import (
    CreateOrderSerializer, OrderSerializer, AddItemSerializer,
    AddItemResponseSerializer, UpdateStatusSerializer
)
from .services import OrderService

ORDER_ID_PARAMETER = OpenApiParameter(
    name='order_id',
    type=OpenApiTypes.INT,
    location=OpenApiParameter.PATH,
    description='Order ID'
)


class CreateOrderView(StoreAPIView):
    @extend_schema(
        summary="Create a new order",
        description="Open a PENDING order at a branch",
        request=CreateOrderSerializer,
        responses={
            201: OrderSerializer,
        },
        examples=[
            OpenApiExample(
                'Create Order Example',
                summary='Dine-in order for table T4',
                value={'branch_id': 1, 'order_type': 'DINE_IN', 'table': 'T4'}
            )
        ]
    )
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        service = OrderService(self.store)
        order_id = service.create_order(**serializer.validated_data)
        order = service.get_order(order_id)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class GetOrderView(StoreAPIView):
    @extend_schema(
        summary="Get order details",
        description="Retrieve an order with its items and kitchen tickets",
        parameters=[ORDER_ID_PARAMETER],
        responses={
            200: OrderSerializer,
        }
    )
    def get(self, request, order_id):
        order = OrderService(self.store).get_order(order_id)
        return Response(OrderSerializer(order).data)


class AddItemView(StoreAPIView):
    @extend_schema(
        summary="Attach an item to an order",
        description="Attach a catalog item at its current price and tax rate; "
                    "each call creates one kitchen ticket",
        parameters=[ORDER_ID_PARAMETER],
        request=AddItemSerializer,
        responses={
            201: AddItemResponseSerializer,
        },
        examples=[
            OpenApiExample(
                'Add Item Example',
                summary='Attach 2 dosas',
                value={'item_id': 1, 'quantity': 2}
            )
        ]
    )
    def post(self, request, order_id):
        serializer = AddItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        service = OrderService(self.store)
        ticket_id = service.add_item(
            order_id,
            serializer.validated_data['item_id'],
            serializer.validated_data['quantity'],
        )
        order = service.get_order(order_id)
        return Response({
            'ticket_id': ticket_id,
            'order': OrderSerializer(order).data,
        }, status=status.HTTP_201_CREATED)


class UpdateStatusView(StoreAPIView):
    @extend_schema(
        summary="Change order status",
        description="Move an order to IN_PROGRESS or CANCELLED. "
                    "BILLED is only reachable by generating the bill.",
        parameters=[ORDER_ID_PARAMETER],
        request=UpdateStatusSerializer,
        responses={
            200: OrderSerializer,
        },
        examples=[
            OpenApiExample(
                'Start Order Example',
                summary='Send the order to the kitchen',
                value={'status': 'IN_PROGRESS'}
            )
        ]
    )
    def post(self, request, order_id):
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        service = OrderService(self.store)
        service.update_status(order_id, serializer.validated_data['status'])
        return Response(OrderSerializer(service.get_order(order_id)).data)
