from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from chatternet.database.connection import mongo_db_dependency
from chatternet.utils.clock import utc_now


router = APIRouter(tags=["health"])


@router.get("/ping")
async def ping():
    return {"ok": True, "time": utc_now().isoformat()}


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    return "ok"


@router.get("/api/health")
async def api_health():
    return {"ok": True, "time": utc_now().isoformat()}


@router.get("/api/db/health")
async def db_health(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)):
    try:
        await db.list_collection_names()
    except PyMongoError as exc:
        return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})
    return {"ok": True}
