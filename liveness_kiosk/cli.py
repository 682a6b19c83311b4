import csv
import os
from typing import Optional
import typer
import uvicorn
import yaml

from liveness_kiosk.app.config import CONFIG_ENV, config_from_dict, load_config
from liveness_kiosk.app.logs import setup_logging
from liveness_kiosk.models.base import Evidence
from liveness_kiosk.pipeline.session import LivenessSession
from liveness_kiosk.workflow import InlineDispatcher, ManualScheduler


app = typer.Typer(name="liveness-kiosk")

TRUE_VALUES = {"1", "true", "yes", "y", "spoof"}


@app.command()
def api(host: str = "127.0.0.1", port: int = 8000, config: Optional[str] = None):
    """Run the FastAPI session service."""
    cfg = load_config(config)
    setup_logging(cfg.log_level)
    if config:
        # create_app runs in the server and reads the same file
        os.environ[CONFIG_ENV] = os.path.abspath(config)
    uvicorn.run(
        "liveness_kiosk.api.server:create_app",
        host=host,
        port=port,
        factory=True,
        reload=False,
    )


@app.command()
def replay(csv_path: str, config: Optional[str] = None, scenario: Optional[str] = None, fps: float = 30.0):
    """Replay a recorded evidence stream (confidence,is_spoof[,timestamp]) through a session."""
    cfg = load_config(config)
    if scenario:
        cfg = config_from_dict({"scenario": scenario}, cfg)
    setup_logging(cfg.log_level)

    clock = ManualScheduler()
    session = LivenessSession(cfg, scheduler=clock, dispatcher=InlineDispatcher())
    session.set_listener(
        lambda ch: typer.echo(f"  -> {ch.state.value}{' (pending)' if ch.pending else ''}: {ch.message}")
    )
    session.start()

    frames = 0
    origin = None
    with open(csv_path, "r", newline="", encoding="utf-8") as f:
        for row in csv.reader(f):
            if not row or row[0].strip().lower() in ("confidence", "") or row[0].startswith("#"):
                continue
            try:
                conf = float(row[0])
                raw = float(row[2]) if len(row) > 2 and row[2].strip() else None
            except ValueError:
                typer.echo(f"skipping malformed row: {row}", err=True)
                continue
            is_spoof = len(row) > 1 and row[1].strip().lower() in TRUE_VALUES
            if raw is not None:
                # Recorded timestamps are wall-clock; replay them relative to the first frame
                origin = raw if origin is None else origin
                ts = raw - origin
            else:
                ts = clock.now + 1.0 / fps
            clock.advance_to(ts)
            res = session.submit(Evidence(conf, is_spoof, ts))
            frames += 1
            typer.echo(
                f"{frames:4d} t={ts:7.3f} conf={res.confidence:.2f} {res.confidence_level.value:<8} "
                f"susp={res.suspicion:2d} proceed={int(res.should_proceed)} "
                f"challenge={int(res.trigger_challenge)} spoof={int(res.is_spoof)} | {res.explanation}"
            )
    typer.echo(f"Replayed {frames} frames, final state {session.state.value}")
    session.close()


@app.command("show-config")
def show_config(config: Optional[str] = None):
    """Print the effective configuration."""
    cfg = load_config(config)
    typer.echo(yaml.safe_dump(cfg.to_dict(), sort_keys=False))


if __name__ == "__main__":
    app()
