"""gatehouse entrypoint.

Run with:
  python -m gatehouse
"""

import uvicorn
from dotenv import load_dotenv

from gatehouse.config import Settings
from gatehouse.logs import setup_logging


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    uvicorn.run(
        "gatehouse.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
