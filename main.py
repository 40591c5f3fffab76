"""ASGI entry point: ``uvicorn main:app`` or ``python main.py``.

Host and port default to the ``server`` section of config.yaml
(``MEMOREEL_CONFIG`` selects another file); flags override them.
"""

from __future__ import annotations

import argparse

from dotenv import load_dotenv

load_dotenv()

from memoreel.api.app import create_app  # noqa: E402
from memoreel.utils.config import load_config  # noqa: E402
from memoreel.utils.logging import Verbosity, setup_logging  # noqa: E402

setup_logging(Verbosity.NORMAL)
config = load_config()
app = create_app(config)


def main() -> None:
    parser = argparse.ArgumentParser(description="memoreel render server")
    parser.add_argument("--host", default=config.server.host)
    parser.add_argument("--port", type=int, default=config.server.port)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    args = parser.parse_args()

    import uvicorn
    # the render queue is process-local, so never more than one worker
    uvicorn.run("main:app", host=args.host, port=args.port, reload=args.reload, workers=1)


if __name__ == "__main__":
    main()
