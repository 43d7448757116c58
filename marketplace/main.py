# marketplace/main.py
import uvicorn

from marketplace.api import create_app
from marketplace.data import models  # noqa: F401  registers every table on Base.metadata
from marketplace.data.database import Base, engine
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def init_db():
    logger.info(f"Creating missing tables: {sorted(Base.metadata.tables)}")
    Base.metadata.create_all(bind=engine)


app = create_app()


if __name__ == "__main__":
    init_db()
    uvicorn.run(app, host="0.0.0.0", port=8000)
