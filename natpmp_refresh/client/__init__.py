"""HTTP requester for the remote port-mapping service."""

from natpmp_refresh.client.http_client import ForwardServiceClient

__all__ = ["ForwardServiceClient"]
