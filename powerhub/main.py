import asyncio
import logging
from contextlib import asynccontextmanager
from queue import Queue

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask

from .errors import InvalidArgumentError, PowerHubError
from .gateway import PowerGateway
from .logging_setup import setup_logging
from .mqtt_handler import queue_forwarder, start_mqtt
from .schemas import (
    AlertIn, NodeCreate, NodeOut, NodeRename, NodeSettings, RelayIn, RelayOut,
    ScheduleIn, ScheduleOut, ScheduleToggle, TelemetryIn, TimerIn, TimerStatus,
)
from .settings import Settings, settings as default_settings
from .utils import add_cors

log = logging.getLogger("powerhub.api")

router = APIRouter()


def get_gateway(request: Request) -> PowerGateway:
    return request.app.state.gateway


# ---------------- nodes ----------------

@router.get("/api/nodes", response_model=dict[str, NodeOut])
async def list_nodes(gw: PowerGateway = Depends(get_gateway)):
    return gw.registry.list()

@router.post("/api/nodes", status_code=201)
async def add_node(body: NodeCreate, gw: PowerGateway = Depends(get_gateway)):
    gw.register_node(body.nodeId, body.name)
    return {"message": "Node added successfully", "nodeId": body.nodeId}

@router.post("/api/nodes/{node_id}/settings")
async def update_settings(node_id: str, body: NodeSettings, gw: PowerGateway = Depends(get_gateway)):
    changes = {}
    if "threshold" in body.model_fields_set:
        changes["threshold"] = body.threshold
    if "autoCutoff" in body.model_fields_set:
        changes["auto_cutoff"] = body.autoCutoff
    gw.registry.update_settings(node_id, **changes)
    return {"success": True, "message": "Settings updated"}

@router.post("/api/nodes/{node_id}/name")
async def rename_node(node_id: str, body: NodeRename, gw: PowerGateway = Depends(get_gateway)):
    gw.registry.rename(node_id, body.name)
    return {"success": True, "message": "Node name updated successfully"}

@router.delete("/api/nodes/{node_id}")
async def remove_node(node_id: str, gw: PowerGateway = Depends(get_gateway)):
    gw.remove_node(node_id)
    return {"message": "Node removed successfully"}

# ---------------- telemetry ----------------

@router.get("/api/sensor/{node_id}", response_model=NodeOut)
async def read_sensor(node_id: str, gw: PowerGateway = Depends(get_gateway)):
    return gw.registry.get(node_id)

@router.post("/api/sensor/{node_id}")
async def report_sensor(node_id: str, body: TelemetryIn, gw: PowerGateway = Depends(get_gateway)):
    gw.report_telemetry(node_id, body.voltage, body.current, body.power)
    return {"success": True}

# ---------------- relay ----------------

@router.get("/api/relay/{node_id}", response_model=RelayOut)
async def get_relay(node_id: str, gw: PowerGateway = Depends(get_gateway)):
    return gw.relay.get(node_id)

@router.post("/api/relay/{node_id}")
async def set_relay(node_id: str, body: RelayIn, gw: PowerGateway = Depends(get_gateway)):
    gw.relay.set(node_id, body.state)
    return {"success": True, "message": f"Relay {body.state} for node {node_id}"}

# ---------------- schedules ----------------

@router.get("/api/schedules/{node_id}", response_model=list[ScheduleOut])
async def list_schedules(node_id: str, gw: PowerGateway = Depends(get_gateway)):
    return gw.schedules.list(node_id)

@router.post("/api/schedules/{node_id}")
async def add_schedule(node_id: str, body: ScheduleIn, gw: PowerGateway = Depends(get_gateway)):
    schedule = gw.schedules.add(node_id, body.time, body.action)
    return {"success": True, "schedule": schedule}

@router.delete("/api/schedules/{node_id}/{schedule_id}")
async def delete_schedule(node_id: str, schedule_id: str, gw: PowerGateway = Depends(get_gateway)):
    gw.schedules.remove(node_id, schedule_id)
    return {"success": True}

@router.patch("/api/schedules/{node_id}/{schedule_id}")
async def toggle_schedule(node_id: str, schedule_id: str, body: ScheduleToggle, gw: PowerGateway = Depends(get_gateway)):
    schedule = gw.schedules.set_enabled(node_id, schedule_id, body.enabled)
    return {"success": True, "schedule": schedule}

# ---------------- timer ----------------

@router.post("/api/timer/{node_id}")
async def start_timer(node_id: str, body: TimerIn, gw: PowerGateway = Depends(get_gateway)):
    gw.timers.start(node_id, body.duration, body.action)
    return {"success": True}

@router.get("/api/timer/{node_id}", response_model=TimerStatus, response_model_exclude_none=True)
async def timer_status(node_id: str, gw: PowerGateway = Depends(get_gateway)):
    return gw.timers.status(node_id)

@router.delete("/api/timer/{node_id}")
async def cancel_timer(node_id: str, gw: PowerGateway = Depends(get_gateway)):
    gw.timers.cancel(node_id)
    return {"success": True}

# ---------------- logs & alerts ----------------

@router.get("/api/logs/{node_id}")
async def download_logs(node_id: str, gw: PowerGateway = Depends(get_gateway)):
    path, filename = gw.recorder.snapshot(node_id)
    return FileResponse(
        path,
        media_type="text/csv",
        filename=filename,
        background=BackgroundTask(path.unlink, missing_ok=True),
    )

@router.post("/api/alert")
async def manual_alert(body: AlertIn, gw: PowerGateway = Depends(get_gateway)):
    gw.manual_alert(body.nodeId, body.power)
    return {"success": True}

@router.get("/health")
async def health(gw: PowerGateway = Depends(get_gateway)):
    return {"status": "healthy", **gw.health()}

@router.websocket("/ws")
async def events_ws(websocket: WebSocket):
    gw: PowerGateway = websocket.app.state.gateway
    await gw.broadcaster.serve(websocket)


# ---------------- application ----------------

async def _powerhub_error(request: Request, exc: PowerHubError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

async def _validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=InvalidArgumentError.status_code,
        content={"error": "Invalid request", "detail": jsonable_errors(exc)},
    )

def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


def create_app(settings: Settings | None = None, gateway: PowerGateway | None = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format)
        gw = gateway or PowerGateway(settings)
        app.state.gateway = gw
        await gw.start()

        mqtt_client = None
        forwarder = None
        if settings.mqtt_host:
            message_queue: Queue = Queue()
            try:
                mqtt_client = start_mqtt(message_queue, settings)
                forwarder = asyncio.create_task(queue_forwarder(message_queue, gw))
            except OSError as e:
                log.error("MQTT failed to start: %s", e)

        yield

        if forwarder:
            forwarder.cancel()
        if mqtt_client is not None:
            mqtt_client.loop_stop()
            mqtt_client.disconnect()
        await gw.stop()

    app = FastAPI(title="PowerHub Gateway", version="0.1.0", lifespan=lifespan)
    add_cors(app, settings.cors_origins)
    app.add_exception_handler(PowerHubError, _powerhub_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.include_router(router)
    return app


app = create_app()


def run():
    uvicorn.run("powerhub.main:app", host=default_settings.host, port=default_settings.port)
