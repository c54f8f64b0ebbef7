"""HTTP layer for micflow.

Provides :class:`HttpExecutor`, a blocking wrapper around :mod:`httpx` that
sends the form-encoded requests built by
:class:`~micflow.auth.request_builder.RequestBuilder`, plus the request/response
containers it exchanges.

Example::

    from micflow.client import HttpExecutor

    with HttpExecutor(client_config) as executor:
        response = executor.execute(request)
"""

from micflow.client.executor import (
    FORM_CONTENT_TYPE,
    AuthType,
    HttpExecutor,
    HttpRequest,
    HttpResponse,
    basic_credential,
)

__all__ = [
    "FORM_CONTENT_TYPE",
    "AuthType",
    "HttpExecutor",
    "HttpRequest",
    "HttpResponse",
    "basic_credential",
]
