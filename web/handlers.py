"""HTTP handlers for the analysis API and the dashboard data endpoints."""
from __future__ import annotations

import json
import logging
from typing import Any

from aiohttp import web

from services.errors import DatastoreNotConfiguredError, InvalidInputError
from services.validation import normalize_url
from web.context import SERVICES_KEY, Services
from web.filters import expected_identities, identify_automation

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


def _services(request: web.Request) -> Services:
    return request.app[SERVICES_KEY]


async def _read_json(request: web.Request) -> dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidInputError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return body


def _parse_id(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{field} must be an integer") from exc
    if parsed <= 0:
        raise InvalidInputError(f"{field} must be positive")
    return parsed


def _path_id(request: web.Request) -> int:
    return _parse_id(request.match_info["id"], "id")


def _limit(request: web.Request, default: int, maximum: int = 500) -> int:
    raw = request.query.get("limit")
    if raw is None:
        return default
    return min(_parse_id(raw, "limit"), maximum)


def _require_datastore(services: Services) -> None:
    if not services.database.configured:
        raise DatastoreNotConfiguredError()


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise InvalidInputError(f"{field} must be a boolean")


@routes.post("/analyze")
async def analyze(request: web.Request) -> web.Response:
    services = _services(request)
    body = await _read_json(request)

    url = normalize_url(body.get("url"))
    is_quick_test = bool(body.get("isQuickTest", False))
    raw_url_id = body.get("urlId")
    url_id = _parse_id(raw_url_id, "urlId") if raw_url_id is not None else None

    _require_datastore(services)
    if not is_quick_test:
        if url_id is None:
            raise InvalidInputError("urlId is required for monitored URL analysis")
        services.targets.get_target(url_id)

    outcome = await services.analysis.analyze(url, url_id=url_id, is_quick_test=is_quick_test)
    return web.json_response(outcome.to_response())


@routes.post("/cron-sweep")
async def cron_sweep(request: web.Request) -> web.Response:
    source = identify_automation(request)
    if source is None:
        received = request.headers.get("User-Agent", "")
        logger.warning("Unauthorized sweep request, User-Agent: %r", received)
        return web.json_response(
            {
                "success": False,
                "error": "Unauthorized - Invalid user agent",
                "expected": expected_identities(),
                "received": received,
            },
            status=401,
        )

    logger.info("Verified automated sweep request from %s", source)
    summary = await _services(request).sweeper.run()
    return web.json_response(summary)


@routes.post("/insight")
async def insight(request: web.Request) -> web.Response:
    body = await _read_json(request)
    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise InvalidInputError("Prompt is required")

    gemini = _services(request).gemini
    text = await gemini.generate(prompt)
    logger.info("Successfully generated AI insight")
    return web.json_response({"success": True, "insight": text, "model": gemini.model})


@routes.get("/insight/dashboard")
async def dashboard_insight(request: web.Request) -> web.Response:
    result = await _services(request).insights.dashboard_insight()
    return web.json_response({"success": True, **result})


@routes.post("/screenshot")
async def screenshot(request: web.Request) -> web.Response:
    services = _services(request)
    body = await _read_json(request)
    url = normalize_url(body.get("url"))

    raw_url_id = body.get("urlId")
    url_id: int | str | None
    if raw_url_id is None or (isinstance(raw_url_id, str) and raw_url_id.startswith("test-")):
        url_id = raw_url_id
    else:
        url_id = _parse_id(raw_url_id, "urlId")
        _require_datastore(services)
        services.targets.get_target(url_id)

    result = await services.screenshots.capture(url, url_id)
    return web.json_response(result)


@routes.get("/urls")
async def list_urls(request: web.Request) -> web.Response:
    targets = _services(request).targets
    if request.query.get("dashboard", "").lower() in {"1", "true", "yes"}:
        items = targets.list_dashboard_targets()
    else:
        items = targets.list_targets()
    return web.json_response({"success": True, "urls": [item.to_dict() for item in items]})


@routes.post("/urls")
async def add_url(request: web.Request) -> web.Response:
    body = await _read_json(request)
    url = normalize_url(body.get("url"))
    name = body.get("name")
    description = body.get("description") or ""
    if name is not None and not isinstance(name, str):
        raise InvalidInputError("name must be a string")
    if not isinstance(description, str):
        raise InvalidInputError("description must be a string")
    show = _as_bool(body.get("showOnDashboard", True), "showOnDashboard")

    target = _services(request).targets.add_target(url, name, description, show)
    logger.info("Added monitored URL %s as #%s", target.url, target.id)
    return web.json_response({"success": True, "url": target.to_dict()}, status=201)


@routes.patch("/urls/{id}")
async def update_url(request: web.Request) -> web.Response:
    target_id = _path_id(request)
    body = await _read_json(request)
    targets = _services(request).targets
    targets.get_target(target_id)

    name = body.get("name")
    if "name" in body and not isinstance(name, str):
        raise InvalidInputError("name must be a string")
    show = _as_bool(body["showOnDashboard"], "showOnDashboard") if "showOnDashboard" in body else None
    order = body.get("displayOrder")
    if "displayOrder" in body and (isinstance(order, bool) or not isinstance(order, int)):
        raise InvalidInputError("displayOrder must be an integer")

    target = targets.update(target_id, name=name, show_on_dashboard=show, display_order=order)
    return web.json_response({"success": True, "url": target.to_dict()})


@routes.delete("/urls/{id}")
async def delete_url(request: web.Request) -> web.Response:
    target = _services(request).targets.remove_target(_path_id(request))
    logger.info("Deleted monitored URL %s and its history", target.url)
    return web.json_response({"success": True, "deleted": target.to_dict()})


@routes.get("/urls/{id}/results")
async def url_results(request: web.Request) -> web.Response:
    services = _services(request)
    target = services.targets.get_target(_path_id(request))
    records = services.analyses.list_for_target(target.id, limit=_limit(request, 100))
    return web.json_response(
        {
            "success": True,
            "url": target.to_dict(),
            "results": [record.to_dict() for record in records],
        }
    )


@routes.get("/urls/{id}/screenshots")
async def url_screenshots(request: web.Request) -> web.Response:
    services = _services(request)
    target = services.targets.get_target(_path_id(request))
    records = services.screenshot_records.list_for_target(target.id, limit=_limit(request, 20, maximum=100))
    return web.json_response({"success": True, "screenshots": [record.to_dict() for record in records]})


@routes.delete("/results/{id}")
async def delete_result(request: web.Request) -> web.Response:
    _services(request).analyses.delete(_path_id(request))
    return web.json_response({"success": True})


@routes.get("/quick-tests")
async def list_quick_tests(request: web.Request) -> web.Response:
    records = _services(request).quick_tests.list_recent(_limit(request, 50))
    return web.json_response({"success": True, "quick_tests": [record.to_dict() for record in records]})


@routes.get("/quick-tests/{id}")
async def get_quick_test(request: web.Request) -> web.Response:
    record = _services(request).quick_tests.get(_path_id(request))
    return web.json_response({"success": True, "quick_test": record.to_dict()})


@routes.delete("/quick-tests/{id}")
async def delete_quick_test(request: web.Request) -> web.Response:
    _services(request).quick_tests.delete(_path_id(request))
    return web.json_response({"success": True})


@routes.get("/debug/summary")
async def debug_summary(request: web.Request) -> web.Response:
    services = _services(request)
    urls = services.targets.list_targets()
    recent_analyses = services.analyses.list_recent(10)
    recent_quick_tests = services.quick_tests.list_recent(5)
    return web.json_response(
        {
            "summary": {
                "datastore_configured": services.database.configured,
                "total_urls": len(urls),
                "dashboard_visible_urls": sum(1 for url in urls if url.show_on_dashboard),
                "recent_analyses": len(recent_analyses),
                "recent_quick_tests": len(recent_quick_tests),
            },
            "urls": [url.to_dict() for url in urls],
            "recent_analyses": [record.to_dict() for record in recent_analyses],
            "recent_quick_tests": [record.to_dict() for record in recent_quick_tests],
        }
    )


@routes.post("/setup-sample-urls")
async def setup_sample_urls(request: web.Request) -> web.Response:
    targets = _services(request).targets
    results = targets.seed_samples()
    return web.json_response(
        {
            "success": True,
            "message": "Sample URLs setup completed",
            "results": results,
            "current_urls": [target.to_dict() for target in targets.list_targets()],
        }
    )


@routes.get("/api-logs")
async def api_logs(request: web.Request) -> web.Response:
    logs = _services(request).usage_log.list_recent(_limit(request, 50))
    return web.json_response({"success": True, "logs": [entry.to_dict() for entry in logs]})
