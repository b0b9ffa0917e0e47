"""Intercepting route — every request not handled by /_gateway goes here.

Learn: The request is copied into a GatewayRequest, answered by the
gateway (cache or upstream, per strategy), and the snapshot is turned back
into a Response. Raw network failures that no strategy could absorb map to
502 (unreachable) or 504 (timeout), like any reverse proxy.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from farmsync.api.deps import get_gateway
from farmsync.gateway.errors import FetchTimeout, NetworkError
from farmsync.gateway.fetch import GatewayRequest
from farmsync.gateway.worker import CacheGateway

router = APIRouter()


@router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def intercept(
    path: str,
    request: Request,
    gateway: CacheGateway = Depends(get_gateway),
):
    url = request.url.path
    if request.url.query:
        url += f"?{request.url.query}"

    gateway_request = GatewayRequest(
        url=url,
        method=request.method,
        headers=dict(request.headers),
        body=await request.body(),
    )

    try:
        snapshot = await gateway.handle(gateway_request)
    except FetchTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    except NetworkError as e:
        raise HTTPException(status_code=502, detail=str(e))

    headers = {k: v for k, v in snapshot.headers.items() if k != "content-length"}
    return Response(
        content=snapshot.body,
        status_code=snapshot.status,
        headers=headers,
    )
