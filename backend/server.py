#!/usr/bin/env python3
"""
HTTP/WebSocket server for the binary trading engine.
Lets a frontend open trades, poll the active/history views and receive
settlement events in real time.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Optional, Set

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from config import EngineConfig, ALLOWED_DURATIONS, DURATION_LABELS, PAYOUT_MULTIPLIER
from errors import InvalidParameter, InsufficientBalance
from paper_wallet import PaperWallet
from quotes import QuoteBoard
from trade_clock import TickResult
from trade_engine import TradeEngine
from trade_log import setup_logging
from trade_models import Trade, TradeSettled

logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Binary Trading Engine API",
    description="Up/down contracts with simulated prices, live trade views and settlement events",
    version="1.0.0",
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

engine: Optional[TradeEngine] = None
wallet: Optional[PaperWallet] = None
quotes: Optional[QuoteBoard] = None
quote_task: Optional[asyncio.Task] = None

# WebSocket clients
ws_clients: Set[WebSocket] = set()


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup():
    """Build the engine and its collaborators"""
    global engine, wallet, quotes, quote_task

    config = EngineConfig.from_env()
    engine = TradeEngine(config=config)
    quotes = QuoteBoard(interval=config.quote_interval_sec)
    wallet = PaperWallet(starting_balance=config.starting_balance)
    wallet.attach(engine)

    engine.on_trade_opened = broadcast_trade_opened
    engine.subscribe(broadcast_trade_settled)
    engine.clock.on_tick = broadcast_active_trades

    quote_task = asyncio.create_task(quotes.run(on_update=broadcast_quotes))

    logger.info(f"[Server] Engine ready | tick {config.tick_interval_sec}s | payout x{config.payout_multiplier}")


@app.on_event("shutdown")
async def shutdown():
    """Stop the quote ticker and the clock; trades still running are abandoned"""
    global quote_task

    if quote_task:
        quote_task.cancel()
        try:
            await quote_task
        except asyncio.CancelledError:
            pass
        quote_task = None

    if engine:
        await engine.shutdown()
    logger.info("[Server] Shutdown complete")


# ============================================================================
# BROADCAST HELPERS
# ============================================================================

async def broadcast(message: dict):
    """Broadcast message to all connected WebSocket clients"""
    if not ws_clients:
        return

    data = json.dumps(message)
    disconnected = set()

    for ws in list(ws_clients):
        try:
            await ws.send_text(data)
        except Exception:
            disconnected.add(ws)

    # Clean up disconnected clients
    for ws in disconnected:
        ws_clients.discard(ws)


async def broadcast_trade_opened(trade: Trade):
    await broadcast({"type": "trade_opened", "data": trade.to_dict(trade.start_time)})


async def broadcast_trade_settled(event: TradeSettled):
    await broadcast({
        "type": "trade_settled",
        "data": event.trade.to_dict(),
        "stats": engine.get_stats().to_dict() if engine else None,
        "wallet": wallet.to_dict() if wallet else None,
    })


async def broadcast_active_trades(result: TickResult):
    """Per-tick snapshot of the active set"""
    if engine and ws_clients:
        await broadcast({
            "type": "active_trades",
            "timestamp": result.timestamp,
            "data": engine.active_view(result.timestamp),
        })


async def broadcast_quotes(prices: dict):
    """Latest quote per asset after each ticker step"""
    if ws_clients:
        await broadcast({"type": "quotes", "data": prices})


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# ============================================================================
# REST ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.get("/api/assets")
async def get_assets():
    """Tradable assets, current quotes and the duration menu"""
    if not quotes:
        return {"assets": []}
    return {
        "assets": [
            {"symbol": symbol, "price": quotes.quote(symbol), "change": quotes.change(symbol), **info}
            for symbol, info in quotes.to_dict().items()
            if not engine or engine.config.enabled_assets is None or symbol in engine.config.enabled_assets
        ],
        "durations": [
            {"label": DURATION_LABELS[d], "value": d} for d in ALLOWED_DURATIONS
        ],
        "payout_multiplier": engine.config.payout_multiplier if engine else PAYOUT_MULTIPLIER,
    }


@app.get("/api/assets/{symbol:path}/chart")
async def get_asset_chart(symbol: str):
    """Recent quote series for one asset, oldest first"""
    if not quotes:
        return _error("Engine not initialized", 503)
    if symbol not in quotes.assets:
        return _error(f"Unknown asset: {symbol}", 404)
    return {
        "symbol": symbol,
        "price": quotes.quote(symbol),
        "change": quotes.change(symbol),
        "points": quotes.history(symbol),
    }


@app.get("/api/config")
async def get_config():
    if not engine:
        return {"error": "Engine not initialized"}
    return engine.config.to_dict()


@app.post("/api/trades")
async def open_trade(body: dict):
    """
    Open a trade.

    Body: {"asset": "BTC/USDT", "direction": "up", "amount": 100, "duration": 60}
    The start price comes from the quote board unless "start_price" is given.
    """
    if not engine or not wallet or not quotes:
        return _error("Engine not initialized", 503)

    try:
        missing = [k for k in ("asset", "direction", "amount", "duration") if k not in body]
        if missing:
            raise InvalidParameter(f"Missing fields: {', '.join(missing)}")

        asset = body["asset"]
        start_price = body.get("start_price")
        if start_price is None:
            start_price = quotes.quote(asset)

        trade = wallet.place_trade(
            engine,
            asset=asset,
            direction=body["direction"],
            amount=body["amount"],
            start_price=start_price,
            duration=body["duration"],
        )
    except (InvalidParameter, InsufficientBalance) as e:
        logger.info(f"[Server] Trade rejected: {e}")
        return _error(str(e))

    return {
        "status": "ok",
        "trade": trade.to_dict(engine.time_fn()),
        "potential_payout": round(engine.potential_payout(trade), 2),
        "balance": round(wallet.balance, 2),
    }


@app.get("/api/trades/active")
async def get_active_trades():
    """Active trades with time remaining and progress"""
    if not engine:
        return {"trades": []}
    return {"trades": engine.active_view()}


@app.get("/api/trades/history")
async def get_trade_history(limit: int = Query(50, ge=0)):
    """Settled trades, most recent first"""
    if not engine:
        return {"trades": []}
    return {"trades": engine.history_view(limit)}


@app.get("/api/trades/{trade_id}")
async def get_trade(trade_id: str):
    if not engine:
        return _error("Engine not initialized", 503)

    trade = engine.get_trade(trade_id)
    if trade is None:
        return _error(f"Trade not found: {trade_id}", 404)
    return {"trade": trade.to_dict(engine.time_fn())}


@app.get("/api/stats")
async def get_stats():
    """Win rate, net P&L and per-asset breakdown"""
    if not engine:
        return {"stats": None}
    return {
        "stats": engine.get_stats().to_dict(),
        "by_asset": engine.ledger.asset_stats(),
    }


@app.get("/api/wallet")
async def get_wallet():
    if not wallet:
        return {"wallet": None}
    return {"wallet": wallet.to_dict()}


# ============================================================================
# WEBSOCKET
# ============================================================================

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """
    WebSocket endpoint for real-time data.

    Clients receive:
    - init: assets, stats, active trades and wallet on connect
    - trade_opened: every admitted trade
    - active_trades: active set snapshot every clock tick
    - trade_settled: every settlement with updated stats
    """
    await ws.accept()
    ws_clients.add(ws)
    if engine:
        engine.clock.add_observer()
    logger.info(f"[WS] Client connected. Total: {len(ws_clients)}")

    try:
        await ws.send_json({
            "type": "init",
            "assets": quotes.symbols if quotes else [],
            "stats": engine.get_stats().to_dict() if engine else None,
            "active": engine.active_view() if engine else [],
            "wallet": wallet.to_dict() if wallet else None,
        })

        # Keep connection alive
        while True:
            try:
                data = await asyncio.wait_for(ws.receive_text(), timeout=30)
                msg = json.loads(data)

                if msg.get("type") == "ping":
                    await ws.send_json({"type": "pong"})

                elif msg.get("type") == "get_history" and engine:
                    await ws.send_json({
                        "type": "history",
                        "data": engine.history_view(msg.get("limit", 50)),
                    })

            except asyncio.TimeoutError:
                # Send keepalive ping
                await ws.send_json({"type": "ping"})

            except (json.JSONDecodeError, AttributeError, TypeError) as e:
                logger.warning(f"[WS] Ignoring malformed message: {e}")
                await ws.send_json({"type": "error", "error": "Malformed message"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[WS] Error: {e}")
    finally:
        ws_clients.discard(ws)
        if engine:
            engine.clock.remove_observer()
        logger.info(f"[WS] Client disconnected. Total: {len(ws_clients)}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the server"""
    setup_logging(os.getenv("LOG_DIR", "logs"))
    uvicorn.run(
        "server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
