from gunicorn.app.base import BaseApplication
from gunicorn.util import import_app


class GunicornApplication(BaseApplication):
    """
    Run the ASGI app under gunicorn with uvicorn workers.

    Each worker runs the lifespan and loads the keypair from the shared keys
    directory; ``main.py`` generates it in the master before workers fork.
    """

    def __init__(self, app_uri: str, options: dict | None = None):
        self.app_uri = app_uri
        self.options = options or {}
        super().__init__()

    def load_config(self):
        for key, value in self.options.items():
            if key in self.cfg.settings and value is not None:
                self.cfg.set(key.lower(), value)

    def load(self):
        return import_app(self.app_uri)
