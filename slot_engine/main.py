import logging
import os
import subprocess
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from slot_engine.database import init_db
from slot_engine.routes import availability, reservations, scheduling, slot_blocks

logger = logging.getLogger(__name__)

app = FastAPI(title="Interview Slot Reservation API")


# Get build info
def get_build_info():
    """Get git commit hash or build timestamp"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass

    # Fallback to build timestamp
    return datetime.now().strftime("%Y%m%d-%H%M%S")


BUILD_HASH = get_build_info()

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(availability.router, prefix="/api", tags=["availability"])
app.include_router(scheduling.router, prefix="/api", tags=["scheduling"])
app.include_router(reservations.router, prefix="/api", tags=["agenda"])
app.include_router(slot_blocks.router, prefix="/api", tags=["slot-blocks"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(f"Interview Slot Reservation API started (build {BUILD_HASH})")


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {"app_name": "Interview Slot Reservation API", "build_hash": BUILD_HASH, "status": "healthy"}
