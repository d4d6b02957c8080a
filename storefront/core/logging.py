import logging

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

def configure_logging(level: str = 'INFO') -> None:
    root = logging.getLogger()
    if not any(getattr(h, '_storefront', False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._storefront = True
        root.addHandler(handler)
    root.setLevel(level.upper())
