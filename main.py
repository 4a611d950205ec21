import logging
import os

from cotton_doctor.app import create_app
from cotton_doctor.config import Config

logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = create_app()


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting cotton-doctor on port {port}")
    app.run(host='0.0.0.0', port=port)
