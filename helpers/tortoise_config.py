from tortoise import Tortoise

from helpers.config import DATABASE_URL

MODEL_MODULES = [
    "models.reference",
    "models.incident",
    "models.appointment",
    "models.booking_workflow",
    "models.voice_task",
    "models.call_log",
    "models.incident_staging",
]

TORTOISE_CONFIG = {
    "connections": {
        "default": DATABASE_URL
    },
    "apps": {
        "models": {
            "models": MODEL_MODULES + ["aerich.models"],
            "default_connection": "default",
        }
    },
    "use_tz": False,
    "timezone": "UTC",
}


async def lifespan(_):
    await Tortoise.init(config=TORTOISE_CONFIG)
    yield
    await Tortoise.close_connections()
