"""
Entry point: `python -m code_runner`.
"""
import sys

import uvicorn
from loguru import logger as l

from code_runner import meta_config


def main() -> None:
    l.remove()
    l.add(sys.stderr, level=meta_config.LOG_LEVEL)
    l.info(f"Starting code runner on {meta_config.HOST}:{meta_config.PORT}")
    uvicorn.run(
        "code_runner.main:app",
        host=meta_config.HOST,
        port=meta_config.PORT,
        log_level=meta_config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
