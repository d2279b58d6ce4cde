"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI,
letting the existing FastAPI app run unchanged on Lambda. Lifespan is
off, so startup hooks run here at cold start instead.
"""

from mangum import Mangum

from chatgate.keys.pool import initialize
from chatgate.logging.audit import setup_logging
from chatgate.main import app

setup_logging()
initialize()

handler = Mangum(app, lifespan="off")
