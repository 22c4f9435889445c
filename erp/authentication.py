import hmac

from django.conf import settings
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

API_KEY_HEADER = 'HTTP_X_API_KEY'


class APIKeyAuthentication(BaseAuthentication):
    """
    Authenticates POS terminals and kitchen displays by the X-API-Key header.

    Terminals are not Django users: on success request.user stays None and
    request.auth holds the key.
    """

    def authenticate(self, request):
        presented = request.META.get(API_KEY_HEADER)
        if not presented:
            return None

        if not hmac.compare_digest(presented.encode(), settings.API_KEY.encode()):
            raise AuthenticationFailed('Invalid API key')

        return (None, presented)

    def authenticate_header(self, request):
        # Makes DRF answer 401 rather than 403 for missing or bad keys
        return 'X-API-Key'
