from fastapi import APIRouter

from trendscope.config import settings

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "version": settings.app.version}
