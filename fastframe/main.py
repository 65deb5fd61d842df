import logging
import os

from fastapi import Depends

from fastframe.api.factory import create_app
from fastframe.api.middleware.schema import ValidatedRequest
from fastframe.core.config import load_options

logging.basicConfig(level=os.getenv("FASTFRAME_LOG_LEVEL", "INFO").upper())

_config = os.getenv("FASTFRAME_CONFIG")
app = create_app(load_options(_config) if _config else None)

v1 = app.api_router("v1")


@v1.get("/echo/{name}")
async def echo(
    data: ValidatedRequest = Depends(
        app.schema(
            {
                "params": {"properties": {"name": {"type": "string", "minLength": 1}}},
                "query": {"properties": {"times": {"type": "integer", "minimum": 1, "maximum": 10}}},
            }
        )
    ),
):
    return {"echo": [data.params["name"]] * data.query.get("times", 1)}


app.include_routers()

if __name__ == "__main__":
    app.listen(
        os.getenv("FASTFRAME_PORT", "8001"),
        host=os.getenv("FASTFRAME_HOST", "0.0.0.0"),
    )
