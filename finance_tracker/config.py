import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres:postgres@db:5432/finance")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Base URL used in emails and notification links
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

# Crontab for the catch-up sweep, evaluated in UTC
CATCH_UP_CRON = os.getenv("CATCH_UP_CRON", "0 8 * * *")

# SMTP transport
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_SECURE = os.getenv("SMTP_SECURE", "false").lower() == "true"
EMAIL_FROM = os.getenv("EMAIL_FROM") or SMTP_USER

CORS_ORIGIN = os.getenv("CORS_ORIGIN", "*")
