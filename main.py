"""Pet Progress Engine — dev launcher. Starts the API server in watch mode."""

import argparse
import asyncio
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def seed_demo(data_dir: Path) -> None:
    from backend.app import build_store
    from backend.config import get_config
    from backend.demo import create_demo_data
    from progress_engine.engine import ProgressEngine

    config = get_config(data_dir)
    if config["store_backend"] != "json":
        print("Demo data needs the json store backend; skipping --demo")
        return
    engine = ProgressEngine(build_store(config, data_dir))
    asyncio.run(create_demo_data(engine))
    print(f"Demo user created under {data_dir}")


def main():
    parser = argparse.ArgumentParser(description="Pet Progress Engine dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Create a demo user before starting the server")
    args = parser.parse_args()

    data_dir = args.data_dir or Path(os.getenv("DATA_DIR", "data"))
    if args.demo:
        seed_demo(data_dir)

    # Build env for the subprocess so the backend picks up the same data dir
    env = os.environ.copy()
    env["DATA_DIR"] = str(data_dir.resolve())

    procs: list[subprocess.Popen] = []

    def shutdown(*_):
        print("\nShutting down...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting backend on http://localhost:{BACKEND_PORT} ...")
    procs.append(subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", BACKEND_PORT],
        cwd=ROOT, env=env,
    ))

    for p in procs:
        p.wait()


if __name__ == "__main__":
    main()
