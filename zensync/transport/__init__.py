# ZenSync Transport Module
# Diff transports and the factory used by the CLI

from zensync.config.schema import ApiConfig
from zensync.transport.base import Transport
from zensync.transport.http import DEFAULT_BASE_URL, HttpTransport


def create_transport(api: ApiConfig) -> HttpTransport:
    """
    Build the HTTP transport described by the API settings.

    Raises:
        ValueError: If no token is configured.
    """
    token = api.resolve_token()
    if not token:
        raise ValueError(f"No API token: set api.token or the {api.token_env} environment variable")
    return HttpTransport(token, base_url=api.base_url, timeout=api.timeout, verify=api.verify_tls)


__all__ = [
    "Transport",
    "HttpTransport",
    "DEFAULT_BASE_URL",
    "create_transport",
]
