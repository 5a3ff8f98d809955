from fastapi import APIRouter, Security

from api.routers.api_v1.endpoints import mint, networks, session, transactions
from api.utils.security import get_api_key


api_router = APIRouter(dependencies=[Security(get_api_key)])

api_router.include_router(session.router, prefix="/session", tags=["Session"])
api_router.include_router(networks.router, prefix="/networks", tags=["Networks"])
api_router.include_router(mint.router, prefix="/mint", tags=["Mint"])
api_router.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
