import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, PositiveFloat, PositiveInt

from selfsend.catalog import Catalog
from selfsend.chain import connector_for, probe_rpc
from selfsend.config import cfg
from selfsend.constants import AUTO_GAS_PRICE, MAX_MNEMONIC_ACCOUNTS, NATIVE_ASSET_REF, Severity
from selfsend.control import BatchController, BatchRunHandle
from selfsend.credentials import derive_from_mnemonic_async, parse_private_keys
from selfsend.errors import InvalidConfiguration, NetworkError
from selfsend.events import Event, EventLog, QueueSink, process_events
from selfsend.logging_config import setup_logging
from selfsend.models import AutoFee, FixedFee, NetworkInfo, TimingConfig

setup_logging()
log = logging.getLogger("selfsend.app")

defaults = cfg["defaults"]
PROBE_TIMEOUT = float(cfg["timeout"]["probe"])
SHUTDOWN_GRACE = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    stop = asyncio.Event()
    app.state.catalog = Catalog.from_config(cfg)
    app.state.event_log = EventLog(maxlen=cfg["events"]["history"])
    app.state.event_queue = asyncio.Queue(maxsize=cfg["events"]["queue_size"])
    app.state.sink = QueueSink(app.state.event_queue)

    # Tests install their own connector factory before startup.
    factory = getattr(app.state, "connector_factory", None) or (lambda network: connector_for(network, cfg))
    app.state.controller = BatchController(app.state.catalog, app.state.sink, factory)

    async with asyncio.TaskGroup() as tg:
        tg.create_task(process_events(app.state.event_queue, app.state.event_log, stop), name="event_processor")
        log.info("Loaded %d networks. Ready to accept requests!", len(app.state.catalog.networks()))
        try:
            yield
        finally:
            log.info("Shutting down...")
            await app.state.controller.shutdown(grace=SHUTDOWN_GRACE)
            stop.set()
    log.info("Shutdown complete")


app = FastAPI(
    title="selfsend",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Networks", "description": "Network and token catalog"},
        {"name": "Batch", "description": "Start, stop and inspect self-transfer batches"},
        {"name": "Logs", "description": "Progress events"},
    ],
)

r_networks = APIRouter(prefix="/networks", tags=["Networks"])
r_batch = APIRouter(prefix="/batch", tags=["Batch"])
r_logs = APIRouter(prefix="/logs", tags=["Logs"])


class StartBatchReq(BaseModel):
    network: str
    asset: str = NATIVE_ASSET_REF  # "native", a catalog symbol or a token contract address
    token_symbol: str | None = None
    token_decimals: int | None = None
    private_keys: list[str] = []
    mnemonic: str | None = None
    mnemonic_count: int = Field(1, ge=1, le=MAX_MNEMONIC_ACCOUNTS)
    min_delay: PositiveFloat | None = None
    max_delay: PositiveFloat | None = None
    gas_price: str | None = None  # "auto" or gwei
    probe: bool = True


def _network_dict(n: NetworkInfo) -> dict:
    return {
        "id": n.id,
        "name": n.name,
        "chain_id": n.chain_id,
        "native": {"symbol": n.native.symbol, "decimals": n.native.decimals},
        "tokens": [
            {"address": t.contract_address, "symbol": t.symbol, "name": t.name, "decimals": t.decimals}
            for t in n.tokens
        ],
    }


def _handle(batch_id: str) -> BatchRunHandle:
    try:
        return app.state.controller.get(batch_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"unknown batch {batch_id}")


@app.get("/health")
def health():
    return {"status": "ok"}


@r_networks.get("")
def list_networks():
    return [_network_dict(n) for n in app.state.catalog.networks()]


@r_networks.get("/{network_id}")
def get_network(network_id: str):
    try:
        return _network_dict(app.state.catalog.resolve_network(network_id))
    except InvalidConfiguration as e:
        raise HTTPException(status_code=404, detail=str(e))


@r_batch.post("/start")
async def start_batch(req: StartBatchReq):
    """Validate the request and launch one self-transfer task per credential."""
    credentials, invalid = parse_private_keys(req.private_keys)
    if invalid:
        raise HTTPException(status_code=422, detail={"message": "malformed private keys", "invalid_lines": invalid})
    controller: BatchController = app.state.controller
    try:
        controller.ensure_idle()
        if req.mnemonic:
            credentials += await derive_from_mnemonic_async(req.mnemonic, req.mnemonic_count)
        timing = TimingConfig(
            min_delay=req.min_delay if req.min_delay is not None else defaults["min_delay"],
            max_delay=req.max_delay if req.max_delay is not None else defaults["max_delay"],
        )
        gas_price = req.gas_price or defaults["gas_price"]
        fee = AutoFee() if gas_price.lower() == AUTO_GAS_PRICE else FixedFee.from_gwei(gas_price)

        network = app.state.catalog.resolve_network(req.network)
        if req.probe:
            chain_id = await probe_rpc(network.rpc_url, timeout=PROBE_TIMEOUT)
            if chain_id != network.chain_id:
                raise InvalidConfiguration(f"{network.rpc_url} reports chain id {chain_id}, expected {network.chain_id}")
        handle = await controller.start(
            req.network, req.asset, credentials, timing, fee,
            token_symbol=req.token_symbol, token_decimals=req.token_decimals,
        )
    except InvalidConfiguration as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NetworkError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if req.probe:
        app.state.sink.emit(Event(Severity.SUCCESS, f"Connected to {network.name} (chain id {chain_id})",
                                  batch_id=handle.batch_id))
    return handle.status()


@r_batch.get("")
async def list_batches():
    return [h.status() for h in app.state.controller.batches.values()]


@r_batch.get("/{batch_id}")
async def batch_status(batch_id: str):
    return _handle(batch_id).status()


@r_batch.post("/{batch_id}/stop")
async def stop_batch(batch_id: str):
    handle = _handle(batch_id)
    first = app.state.controller.request_stop(handle)
    return {"batch_id": batch_id, "stop_requested": True, "already_requested": not first}


@r_batch.get("/{batch_id}/outcomes")
async def batch_outcomes(batch_id: str):
    handle = _handle(batch_id)
    result = handle.result
    if result is None:
        raise HTTPException(status_code=409, detail=f"batch {batch_id} has not finished")
    return result.to_dict()


@r_logs.get("")
def get_logs(
    severity: Severity | None = None,
    q: str | None = None,
    batch_id: str | None = None,
    order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: PositiveInt = 500,
):
    events = app.state.event_log.filter(severity, q, batch_id, newest_first=order == "desc")
    return [e.to_dict() for e in events[:limit]]


@r_logs.get("/stats")
def log_stats():
    return {**app.state.event_log.counts(), "dropped": app.state.sink.dropped}


@r_logs.get("/export", response_class=PlainTextResponse)
def export_logs(severity: Severity | None = None, q: str | None = None, batch_id: str | None = None):
    event_log: EventLog = app.state.event_log
    text = event_log.export_text(event_log.filter(severity, q, batch_id, newest_first=False))
    filename = f"transaction_logs_{datetime.now().strftime('%Y-%m-%dT%H-%M-%S')}.txt"
    return PlainTextResponse(text, headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@r_logs.delete("")
def clear_logs():
    app.state.event_log.clear()
    return {"cleared": True}


app.include_router(r_networks)
app.include_router(r_batch)
app.include_router(r_logs)
