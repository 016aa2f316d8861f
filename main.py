from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from app.api.attendance.routes import router as attendance_router
from app.api.event_instances.routes import router as event_instances_router
from app.api.members.routes import router as members_router
from app.core.check_in_tokens import get_token_signer
from app.core.config import Environment, settings
from app.core.database import create_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Build the signer once so a missing secret fails at startup, not on first scan
    get_token_signer()
    if settings.ENVIRONMENT != Environment.TEST:
        create_db()
    yield


app = FastAPI(lifespan=lifespan)

# Include routers
app.include_router(attendance_router, prefix='/attendance', tags=['Attendance'])
app.include_router(
    event_instances_router, prefix='/event-instances', tags=['Event Instances']
)
app.include_router(members_router, prefix='/members', tags=['Members'])

origins = ['*']
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.get('/', include_in_schema=False)
def ping():
    return Response(status_code=200)
