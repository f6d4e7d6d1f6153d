import asyncio
import sys

from hypercorn.asyncio import serve
from hypercorn.config import Config

import kubedeck.api
import kubedeck.logstreams

if __name__ == "__main__":  # codecov-skip
    cfg, err = kubedeck.api.compile_client_config()
    if err:
        print("Invalid configuration")
        sys.exit(1)

    try:
        kubedeck.logstreams.setup(cfg.loglevel)
        hypercorn_cfg = Config()
        hypercorn_cfg.bind = [f"{cfg.host}:{cfg.port}"]
        asyncio.run(serve(kubedeck.api.make_app(cfg), hypercorn_cfg))  # type: ignore
    except KeyboardInterrupt:
        print("User abort")
        sys.exit(1)
