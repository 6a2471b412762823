"""Main FastAPI application entry point."""
from audited.api.app import create_app
from audited.database import Base, SessionLocal, engine
from audited.observability import setup_logging
# Import the audit model to register it with SQLAlchemy Base
from audited.models.audit import Audit  # noqa: F401

setup_logging()

# Create database tables
Base.metadata.create_all(bind=engine)

app = create_app(SessionLocal)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
