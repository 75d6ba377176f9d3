from rest_framework.authentication import TokenAuthentication


class BearerTokenAuthentication(TokenAuthentication):
    """Token auth that reads `Authorization: Bearer <key>` (what the client sends)."""

    keyword = "Bearer"
