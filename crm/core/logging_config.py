import logging
import sys

def setup_logging():
    """
    Configure logging for the application.

    Sets up logging to stdout with timestamps, log levels, and module names.
    This works well with Docker and Kubernetes log collectors.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # Reduce SQLAlchemy noise in logs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logging.getLogger("crm")


# Create global logger instance
logger = setup_logging()
