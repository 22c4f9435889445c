from django.conf import settings
from rest_framework.views import APIView

from .store import Store


class StoreAPIView(APIView):
    """APIView that opens a Store for the request and closes it with the response."""

    store = None

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.store = Store(getattr(settings, 'ERP_STORE_ALIAS', 'default')).open()

    def finalize_response(self, request, response, *args, **kwargs):
        if self.store is not None:
            self.store.close()
        return super().finalize_response(request, response, *args, **kwargs)
