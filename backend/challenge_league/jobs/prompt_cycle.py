from __future__ import annotations
import asyncio
from challenge_league.db import SessionLocal
from challenge_league.services.prompt_queue import process_prompt_queue

async def _run() -> dict:
    async with SessionLocal() as session:
        return await process_prompt_queue(session)

def run_prompt_cycle() -> dict:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run())
