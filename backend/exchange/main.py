import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .db.schema import init_db
from .routers import admin, experiences, health, settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Exchange Experience API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup() -> None:
    init_db()
    logger.info("Exchange Experience API ready")


app.include_router(health.router)
app.include_router(experiences.router)
app.include_router(admin.router)
app.include_router(settings.router)


@app.get("/")
def root():
    return {"message": "Exchange Experience API", "docs": "/docs"}
