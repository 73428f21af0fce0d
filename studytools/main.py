from __future__ import annotations

import os
import sys

from dotenv import load_dotenv


def _parse_host_port(argv: list[str], default_host: str, default_port: int) -> tuple[str, int]:
    host = os.getenv("HOST", default_host)
    try:
        port = int(os.getenv("PORT", str(default_port)))
    except ValueError:
        port = default_port

    if "--host" in argv:
        i = argv.index("--host")
        if i + 1 < len(argv):
            host = argv[i + 1]

    if "--port" in argv:
        i = argv.index("--port")
        if i + 1 < len(argv) and argv[i + 1].isdigit():
            port = int(argv[i + 1])

    if len(argv) == 1 and argv[0].isdigit():
        port = int(argv[0])
    elif len(argv) == 2 and argv[1].isdigit():
        host = argv[0]
        port = int(argv[1])

    return host, port


def main() -> None:
    """Main entry point for the Student Hub file tools server."""

    load_dotenv()

    from studytools.api.deps import get_config

    server = get_config().server
    host, port = _parse_host_port(sys.argv[1:], server.host, server.port)

    import uvicorn

    uvicorn.run("studytools.cli.server:app", host=host, port=port, log_level=server.log_level.lower())


if __name__ == "__main__":
    main()
