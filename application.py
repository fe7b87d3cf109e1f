# WSGI entry point
import os
import sys

# Add the current directory to Python path
sys.path.insert(0, os.path.dirname(__file__))

from app_config import configure_logging, load_config
from app import create_app

config = load_config()
configure_logging(config)
application = create_app(config=config)

if __name__ == "__main__":
    application.run()
