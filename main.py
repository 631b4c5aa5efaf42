# main.py - YouTube stream relay entry point
import logging

from app import create_app
from streamrelay.config import RelayConfig

config = RelayConfig.from_env()

# Configure logging
logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app = create_app(config)

if __name__ == '__main__':
    logger.info(f"Server is running on port {config.port}")
    logger.info("Access endpoint: /stream/<video_id>")
    app.run(host=config.host, port=config.port, threaded=True)
