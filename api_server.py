#!/usr/bin/env python3
"""
FastAPI server exposing recent trading activity and the scheduled cycle trigger.
"""

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tradeloop.exceptions import CycleInProgressError, OracleError, TradingLoopError

logger = logging.getLogger(__name__)

app = FastAPI(title="Trading Loop API")


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return 500 with error details"""
    logger.error(f"Unhandled exception in {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "detail": str(exc),
            "path": str(request.url.path)
        }
    )


# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set by main.py when the API runs alongside the loop
loop_controller_instance: Optional[Any] = None


def get_loop_controller():
    if loop_controller_instance is None:
        raise HTTPException(status_code=503, detail="Trading loop not initialized")
    return loop_controller_instance


def verify_cron_token(token: str, secret: str) -> Dict[str, Any]:
    """
    Verify a scheduler bearer token.

    Args:
        token: Raw JWT from the Authorization header
        secret: CRON_SECRET_KEY shared with the scheduler

    Returns:
        Decoded claims

    Raises:
        jwt.InvalidTokenError: If the signature, algorithm or expiry is invalid
    """
    return jwt.decode(token, secret, algorithms=["HS256"])


@app.get("/")
async def root():
    return {"message": "Trading Loop API", "status": "running"}


@app.get("/api/activity")
def get_activity(limit: int = Query(20, ge=1, le=200), controller=Depends(get_loop_controller)):
    """Get recent cycle records (newest first) and current open positions"""
    cycle_controller = controller.cycle_controller
    chats = cycle_controller.ledger.read_recent(limit)

    positions: List[Dict[str, Any]] = []
    try:
        for position in cycle_controller.account_gateway.fetch_positions():
            item = asdict(position)
            item["instrument"] = position.instrument.value
            positions.append(item)
    except Exception as e:
        logger.error(f"Error getting positions: {e}", exc_info=True)
        positions = []

    return {"chats": chats, "positions": positions}


@app.post("/api/cron/run")
def run_cron_cycle(
    initial_capital: Optional[float] = Query(None, gt=0),
    authorization: Optional[str] = Header(None),
    controller=Depends(get_loop_controller),
):
    """Run one trading cycle on behalf of an external scheduler"""
    secret = controller.config.cron_secret_key
    if not secret:
        raise HTTPException(status_code=503, detail="CRON_SECRET_KEY is not configured")

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        verify_cron_token(authorization[len("Bearer "):].strip(), secret)
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected cron token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        record = controller.run_once(initial_capital)
    except CycleInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except OracleError as e:
        logger.error(f"Cron cycle failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except TradingLoopError as e:
        logger.error(f"Cron cycle failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if record is None:
        return {"status": "skipped", "detail": "No market data available"}
    return {"status": "success", "record": asdict(record)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
