#!/usr/bin/env python3
"""
Train Status API - web service for the NW 9th & Naito intersection.

Endpoints:
    GET  /            Map page
    GET  /status      Latest status snapshot and marker descriptor
    POST /refresh     Manual status check (?wait=true to wait for the result)
    GET  /vehicles    TriMet MAX vehicle positions
    GET  /arrivals    MAX vehicles approaching the configured stops
    GET  /badge.svg   Status badge
    GET  /config      Public map configuration
    GET  /health      Service health

Usage:
    uvicorn api.api:app --host 0.0.0.0 --port 8000
"""

import sys
from pathlib import Path

import falcon
import falcon.asgi

# Path resolution - get absolute paths relative to project root
API_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = API_DIR.parent

# Add parent directory to path for package imports when run from a checkout
sys.path.insert(0, str(PROJECT_ROOT))
from trainstatus.app import TrainStatusApp, configure_logging  # noqa: E402
from trainstatus.marker import generate_badge  # noqa: E402

HTML_DIR = API_DIR / 'html'


class LifecycleMiddleware:
    """Start and stop the application with the ASGI server."""

    def __init__(self, train_app: TrainStatusApp):
        self.train_app = train_app

    async def process_startup(self, scope, event):
        await self.train_app.start()

    async def process_shutdown(self, scope, event):
        await self.train_app.stop()


class StatusResource:
    """Latest intersection status."""

    def __init__(self, train_app: TrainStatusApp):
        self.train_app = train_app

    async def on_get(self, req, resp):
        """
        Handle GET request to /status

        Returns JSON with:
        - status: unknown/checking/clear/blocked/error
        - last_checked_at: time of the last successful check (or null)
        - reason: detector explanation or error text
        - checking: whether a check is in flight
        - marker: color/icon/label for the map marker
        """
        resp.status = falcon.HTTP_200
        resp.media = self.train_app.status()


class RefreshResource:
    """Manual status check."""

    def __init__(self, train_app: TrainStatusApp):
        self.train_app = train_app

    async def on_post(self, req, resp):
        """
        Handle POST request to /refresh

        A refresh while a check is already running is ignored and reported
        with accepted=false. With ?wait=true the response carries the
        finished check's status.
        """
        controller = self.train_app.controller
        wait = req.get_param_as_bool('wait', default=False)

        if wait:
            snapshot = await controller.check_now()
            accepted = snapshot is not None
        else:
            accepted = controller.trigger() is not None

        resp.status = falcon.HTTP_202
        resp.media = dict(self.train_app.status(), accepted=accepted)


class VehiclesResource:
    """TriMet MAX vehicles for the map."""

    def __init__(self, train_app: TrainStatusApp, kind: str):
        self.train_app = train_app
        self.kind = kind

    async def on_get(self, req, resp):
        """Always 200; a degraded feed has available=false and an error."""
        if self.kind == 'arrivals':
            feed = await self.train_app.arrivals()
        else:
            feed = await self.train_app.vehicles()
        resp.status = falcon.HTTP_200
        resp.media = feed.to_dict()


class BadgeResource:
    """Status badge as SVG."""

    def __init__(self, train_app: TrainStatusApp):
        self.train_app = train_app

    async def on_get(self, req, resp):
        resp.status = falcon.HTTP_200
        resp.content_type = 'image/svg+xml'
        resp.cache_control = ['no-cache', 'max-age=0']
        resp.text = generate_badge(self.train_app.controller.snapshot.status)


class ConfigResource:
    """Map settings for the browser."""

    def __init__(self, train_app: TrainStatusApp):
        self.train_app = train_app

    async def on_get(self, req, resp):
        resp.status = falcon.HTTP_200
        resp.media = self.train_app.settings.public_map_config()


class HealthResource:
    """Health check endpoint."""

    def __init__(self, train_app: TrainStatusApp):
        self.train_app = train_app

    async def on_get(self, req, resp):
        resp.status = falcon.HTTP_200
        resp.media = self.train_app.health()


class StaticResource:
    """Serve the frontend files."""
    def __init__(self, filename):
        self.filename = filename

    async def on_get(self, req, resp):
        resp.status = falcon.HTTP_200
        resp.content_type = 'text/html'

        try:
            resp.data = (HTML_DIR / self.filename).read_bytes()
        except FileNotFoundError:
            resp.status = falcon.HTTP_404
            resp.text = '<h1>Not found</h1><p>Something\'s missing</p>'


def create_app(train_app: TrainStatusApp, manage_lifecycle: bool = True) -> falcon.asgi.App:
    """
    Build the falcon ASGI app around an application instance.

    Args:
        train_app: The application instance to serve
        manage_lifecycle: Start/stop train_app on ASGI lifespan events

    Returns:
        falcon.asgi.App
    """
    middleware = [LifecycleMiddleware(train_app)] if manage_lifecycle else []
    falcon_app = falcon.asgi.App(middleware=middleware)

    falcon_app.add_route('/', StaticResource('index.html'))
    falcon_app.add_static_route('/static', str(HTML_DIR / 'static'))
    falcon_app.add_route('/status', StatusResource(train_app))
    falcon_app.add_route('/refresh', RefreshResource(train_app))
    falcon_app.add_route('/vehicles', VehiclesResource(train_app, 'vehicles'))
    falcon_app.add_route('/arrivals', VehiclesResource(train_app, 'arrivals'))
    falcon_app.add_route('/badge.svg', BadgeResource(train_app))
    falcon_app.add_route('/config', ConfigResource(train_app))
    falcon_app.add_route('/health', HealthResource(train_app))
    return falcon_app


# Application instance owned by this entry point
train_app = TrainStatusApp.from_env()
configure_logging(train_app.settings)
app = create_app(train_app)
