import os
import sys

import uvicorn

from app.core.config import settings

APP_URI = "app.main:app"


def main():
    if settings.debug:
        os.environ["PYTHONASYNCIODEBUG"] = "1"

    # Gunicorn only runs on POSIX; reload is a development feature of uvicorn
    if settings.debug or settings.reload_uvicorn or not sys.platform.startswith("linux"):
        uvicorn.run(
            app=APP_URI,
            host=settings.backend_host,
            port=settings.backend_port,
            reload=settings.reload_uvicorn,
            workers=settings.workers_count,
            log_config=None,
        )
        return

    from app.security.keys import KeyProvider
    from app.web import GunicornApplication

    # Generate the keypair once in the master so workers only ever load it
    KeyProvider(
        keys_dir=settings.keys_dir,
        private_key_filename=settings.private_key_filename,
        public_key_filename=settings.public_key_filename,
    ).initialize()

    options = {
        "bind": f"{settings.backend_host}:{settings.backend_port}",
        "workers": settings.workers_count,
        "worker_class": "uvicorn.workers.UvicornWorker",
        "graceful_timeout": 30,
    }
    GunicornApplication(APP_URI, options).run()


if __name__ == "__main__":
    main()
