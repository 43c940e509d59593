"""Processor entrypoint - serves the processor app with uvicorn.

Usage:
    python -m instrument_status.processor_entrypoint [--host 0.0.0.0] [--port 8000]
"""

import argparse

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the instrument status processor")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    # log_config=None keeps uvicorn from replacing the Loguru interception
    uvicorn.run("instrument_status.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
