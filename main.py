"""Red Truth — dev launcher. Starts the backend in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Red Truth dev launcher")
    parser.add_argument("--host", default=HOST, help=f"Bind address (default: {HOST})")
    parser.add_argument("--port", default=PORT, help=f"Bind port (default: {PORT})")
    parser.add_argument("--oracle-url", default=None,
                        help="Override ORACLE_URL for this run")
    parser.add_argument("--no-reload", action="store_true",
                        help="Disable auto-reload on source changes")
    args = parser.parse_args()

    # Build env for the subprocess so the backend sees the same oracle settings
    env = os.environ.copy()
    if args.oracle_url:
        env["ORACLE_URL"] = args.oracle_url

    cmd = [sys.executable, "-m", "uvicorn", "backend.app:app",
           "--host", args.host, "--port", str(args.port)]
    if not args.no_reload:
        cmd.append("--reload")

    print(f"Starting backend on http://localhost:{args.port} ...")
    proc = subprocess.Popen(cmd, cwd=ROOT, env=env)

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    proc.wait()


if __name__ == "__main__":
    main()
