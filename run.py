# run.py
# Main entry point: runs the ontology server update once and exits.
# The same job is available as `flask --app run onto update`.

import os
import sys
import logging
from dotenv import load_dotenv

# Load environment variables from .env file, if it exists
# Useful for storing endpoints or the server token locally
dotenv_path = os.path.join(os.path.dirname(__file__), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)

from ontoupdate import create_app # noqa: E402
from ontoupdate.terminology.commands import run_update_job # noqa: E402

flask_app = create_app()
logger = logging.getLogger(__name__)


def main():
    logger.info("STARTING THE APPLICATION")
    with flask_app.app_context():
        exit_code, summary = run_update_job(flask_app.config)
    logger.info(f"APPLICATION FINISHED (exit code {exit_code})")
    return exit_code


if __name__ == '__main__':
    sys.exit(main())
