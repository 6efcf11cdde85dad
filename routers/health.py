from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

health_router = APIRouter(tags=["health"])


@health_router.get("/health", response_class=PlainTextResponse)
async def health():
    return PlainTextResponse("Server is running", status_code=200)
