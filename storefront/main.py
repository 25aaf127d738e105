"""
Storefront API entry point.

    uvicorn storefront.main:app
    gunicorn storefront.main:app -c gunicorn.conf.py
"""

from storefront.config import get_settings
from storefront.serving.api import create_api_app

app = create_api_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
