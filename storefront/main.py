import logging

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from storefront.api.v1 import admin, cart, categories, orders, products, routes_auth
from storefront.core.config import settings
from storefront.core.errors import install_error_handlers
from storefront.core.logging import configure_logging
from storefront.version import VERSION

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title='Storefront API', version=VERSION)

# metrics middleware has to wrap the app before any router is mounted
Instrumentator().instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint='/metrics',
    should_gzip=True,
)

install_error_handlers(app)


@app.get('/health')
def health(): return {'status': 'ok'}


@app.get('/v1/_info')
def info(): return {'service': 'storefront', 'version': VERSION, 'environment': settings.ENVIRONMENT}


@app.on_event('startup')
async def startup_event():
    if settings.AUTO_CREATE_TABLES:
        from storefront.db import models  # noqa: F401
        from storefront.db.session import Base, engine
        Base.metadata.create_all(bind=engine)
        logger.info('Schema ensured on %s', engine.url.render_as_string(hide_password=True))
    for route in app.routes:
        if hasattr(route, 'methods') and hasattr(route, 'path'):
            logger.debug('%s %s', sorted(route.methods), route.path)


app.include_router(routes_auth.router, prefix='/auth', tags=['auth'])
app.include_router(products.router, prefix='/products', tags=['products'])
app.include_router(categories.router, prefix='/categories', tags=['categories'])
app.include_router(cart.router, prefix='/cart', tags=['cart'])
app.include_router(orders.router, prefix='/orders', tags=['orders'])
app.include_router(admin.router, prefix='/admin', tags=['admin'])
