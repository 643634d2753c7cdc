from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from finance_tracker.config import CORS_ORIGIN
from finance_tracker.db.database import init_db
from finance_tracker.api.reminders import router as reminders_router
from finance_tracker.api.reminder_templates import router as reminder_templates_router
from finance_tracker.scheduler.reminder import setup_scheduler
from finance_tracker.services.email_service import EmailSender

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(title="Finance Tracker API")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[CORS_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Email transport shared with the scheduler
email_sender = EmailSender()

# Setup scheduler for reminders
reminder_scheduler = setup_scheduler(email_sender=email_sender)
# Store scheduler in app state so it can be accessed by route handlers
app.state.reminder_scheduler = reminder_scheduler

app.include_router(reminders_router)
app.include_router(reminder_templates_router)

@app.on_event("startup")
async def startup_event():
    """Initialize database, check email and start scheduler on startup."""
    await init_db()

    if not await email_sender.verify():
        logger.warning("Email server unreachable, reminders will fail until it recovers")

    await reminder_scheduler.start()

@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown scheduler on application shutdown."""
    reminder_scheduler.stop()

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "scheduler": reminder_scheduler.state.value,
        "scheduled_jobs": len(reminder_scheduler.registry),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("finance_tracker.main:app", host="0.0.0.0", port=8000)
