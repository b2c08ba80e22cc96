"""
Startup script for the recording backend
Use this instead of 'uvicorn main:app' so HOST/PORT/LOG_LEVEL from .env apply
"""

import sys
import os
import asyncio

# Force unbuffered output
os.environ['PYTHONUNBUFFERED'] = '1'

# Playwright needs ProactorEventLoop on Windows; set it before any imports
if sys.platform == 'win32':
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())


def main():
    import uvicorn
    from config import RecorderConfig

    config = RecorderConfig.from_env()

    print("\n Starting Self-Healing Test Recorder...", flush=True)
    print(f" Server will run on: http://{config.host}:{config.port}", flush=True)
    print(f" API Docs available at: http://{config.host}:{config.port}/docs", flush=True)
    print("\n" + "="*50, flush=True)

    # reload=False keeps logs in this terminal
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=False,
        log_level=config.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
