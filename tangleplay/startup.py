from __future__ import annotations
import sys
from typing import Optional

from tangleplay.backend.common.logging import get_logger, init_logging
from tangleplay.backend.common.tasks import TaskRunner, TaskSpec
from tangleplay.backend.common.types import HealthReport
from tangleplay.backend.gateway import GatewayClient
from tangleplay.backend.player.exceptions import RendererNotFoundError
from tangleplay.backend.player.renderer import find_working_renderer
from tangleplay.config.settings import Settings, get_settings, update_settings


def quick_self_check(
    settings: Settings,
    *,
    gateway: Optional[GatewayClient] = None,
    renderer_ok: Optional[bool] = None,
) -> HealthReport:
    components = {
        "python": "ok" if sys.version_info >= (3, 10) else "degraded",
        "logging": "ok",
        "config": "ok",
        "renderer": "ok" if (settings.has_renderer if renderer_ok is None else renderer_ok) else "fail",
    }
    if gateway is not None:
        components["gateway"] = "ok" if gateway.probe().ok else "degraded"

    if "fail" in components.values():
        status = "fail"
    elif all(v == "ok" for v in components.values()):
        status = "ok"
    else:
        status = "degraded"

    return {"status": status, "components": components}


def ensure_renderer(settings: Settings) -> Settings:
    """Discover and persist a renderer command when none is configured yet."""

    if settings.has_renderer:
        return settings
    command = find_working_renderer()

    return update_settings(renderer_command=command)


def main() -> int:
    settings = get_settings()

    init_logging(settings.log_level, verbosity=settings.verbosity)
    log = get_logger("tangleplay.startup")

    log.info("boot_begin", extra={"app": settings.app_name, "env": settings.env, "log_level": settings.log_level})

    try:
        settings = ensure_renderer(settings)
    except RendererNotFoundError as exc:
        log.error("renderer_missing", extra={"remedies": list(exc.remedies)})

    gateway = GatewayClient.from_settings()
    try:
        with TaskRunner(max_workers=1, context="startup") as runner:
            fut = runner.submit(
                TaskSpec(fn=quick_self_check, args=(settings,), kwargs={"gateway": gateway}, name="self_check")
            )
            health = fut.result(timeout=settings.http_timeout + 5)
    finally:
        gateway.close()
    log.info("health_report", extra=dict(health))

    log.info("boot_ready", extra={"version": __import__("tangleplay").__version__})

    return 0 if health["status"] != "fail" else 1


if __name__ == "__main__":
    raise SystemExit(main())
