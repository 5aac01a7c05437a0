"""Run the livedraw server: python3 -m livedraw"""

import uvicorn

from livedraw.config import settings


def main() -> None:
    uvicorn.run("livedraw.api.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
