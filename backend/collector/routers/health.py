from fastapi import APIRouter, Depends

from ..deps import get_settings
from ..settings import Settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(cfg: Settings = Depends(get_settings)):
	return {
		"status": "ok",
		"sheets_configured": cfg.sheets_configured,
		"drive_configured": cfg.drive_configured,
	}
