import os
import argparse
import subprocess
import sys
import logging
import secrets
import smtplib
from pathlib import Path
from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("accountd")

# Load environment variables
load_dotenv()

ENV_TEMPLATE = """SECRET_KEY={secret}
ALGORITHM=HS256
ACCESS_TOKEN_EXPIRE_MINUTES=7200
OTP_LENGTH=6
OTP_EXPIRE_MINUTES=10
BCRYPT_ROUNDS=12
DATABASE_URL=sqlite:///./app.db
SMTP_HOST=
SMTP_PORT=587
SMTP_USERNAME=
SMTP_PASSWORD=
EMAIL_FROM=
"""

def write_env_file(env_path=Path(".env")):
    """Write a starter .env with a fresh signing secret unless one exists"""
    if env_path.exists():
        logger.info(".env file already exists")
        return False

    env_path.write_text(ENV_TEMPLATE.format(secret=secrets.token_urlsafe(32)))
    logger.info("Created .env with a generated SECRET_KEY. Fill in the SMTP settings to send codes.")
    return True

def create_tables():
    """Create the accounts table"""
    from sqlalchemy.exc import SQLAlchemyError
    from app.db.base import Base, engine
    from app.models.user import User

    try:
        Base.metadata.create_all(bind=engine)
        logger.info(f"Table '{User.__tablename__}' is ready")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Error setting up database: {str(e)}")
        return False

def check_smtp():
    """Open an SMTP session with the configured credentials without sending anything"""
    from app.core.config import settings

    if not settings.SMTP_HOST:
        logger.warning("SMTP_HOST is empty; codes will only be logged")
        return False
    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
            server.starttls()
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        logger.info(f"SMTP server {settings.SMTP_HOST}:{settings.SMTP_PORT} accepted the connection")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP check failed: {e}")
        return False

def run_server(port=8000, reload=True):
    """Start the FastAPI server using uvicorn"""
    port = int(os.environ.get("PORT", port))
    args = ["uvicorn", "main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        args.append("--reload")

    logger.info(f"Starting account service on port {port}...")
    try:
        subprocess.run(args)
    except KeyboardInterrupt:
        logger.info("Server stopped")
        sys.exit(0)

def main():
    parser = argparse.ArgumentParser(description="Account service launcher")
    parser.add_argument("--port", type=int, default=8000, help="Port to run the server on")
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload on code changes")
    parser.add_argument("--skip-setup", action="store_true", help="Skip creating tables")
    parser.add_argument("--setup-only", action="store_true", help="Write .env and create tables, then exit")
    parser.add_argument("--check-smtp", action="store_true", help="Verify the SMTP settings and exit")
    args = parser.parse_args()

    if args.check_smtp:
        sys.exit(0 if check_smtp() else 1)

    write_env_file()

    if not args.skip_setup and not create_tables():
        sys.exit(1)

    if args.setup_only:
        logger.info("Setup complete. Exiting.")
        return

    run_server(port=args.port, reload=not args.no_reload)

if __name__ == "__main__":
    main()
