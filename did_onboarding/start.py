"""
Simple Backend Starter
Just run: python -m did_onboarding.start
"""

import sys
import subprocess

from did_onboarding.config import config


def main():
    print("=" * 70)
    print("Starting RYT DID Onboarding Server...")
    print("=" * 70)
    print()

    process = None
    try:
        # CREATE_NEW_PROCESS_GROUP flag for Windows to allow Ctrl+C
        creationflags = subprocess.CREATE_NEW_PROCESS_GROUP if sys.platform == 'win32' else 0

        process = subprocess.Popen([
            sys.executable, "-m", "uvicorn",
            "did_onboarding.main:app",
            "--host", config.API_HOST,
            "--port", str(config.API_PORT),
            "--log-level", config.API_LOG_LEVEL
        ], creationflags=creationflags)

        process.wait()

    except KeyboardInterrupt:
        print("\n\nStopping server...")
        if process:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
        print("Server stopped.")


if __name__ == "__main__":
    main()
