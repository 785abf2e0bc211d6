import uvicorn

from app.main import create_app
from app.utils import g_config
from app.utils.log import setup_logging

setup_logging(g_config.logging.level)
app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=g_config.server.host,
        port=g_config.server.port,
        log_config=None,
    )
